from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    DATA_DIR,
    DB_FILE_NAME,
    DEFAULT_MIN_QUANTITY,
    RETURN_POLICY_CUMULATIVE,
    RETURN_POLICY_SINGLE,
)

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = Path(os.environ.get("BOUTIQUE_POS_DATA_DIR", BASE_DIR / DATA_DIR))
DB_PATH = Path(os.environ.get("BOUTIQUE_POS_DB", DATA_PATH / DB_FILE_NAME))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class LedgerConfig:
    """
    Knobs for the inventory/debt core.

    default_min_quantity:  threshold given to a stock row created by an adjustment
    allow_negative_stock:  False rejects any adjustment that would drop below zero
    return_policy:         'single' (a sold line may be returned once) or
                           'cumulative' (returned so far + requested <= sold)
    """
    default_min_quantity: int = DEFAULT_MIN_QUANTITY
    allow_negative_stock: bool = True
    return_policy: str = RETURN_POLICY_SINGLE

    def __post_init__(self) -> None:
        if self.return_policy not in (RETURN_POLICY_SINGLE, RETURN_POLICY_CUMULATIVE):
            raise ValueError(f"Unknown return policy: {self.return_policy!r}")
        if self.default_min_quantity < 0:
            raise ValueError("default_min_quantity cannot be negative.")

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        return cls(
            default_min_quantity=int(
                os.environ.get("BOUTIQUE_POS_DEFAULT_MIN_QUANTITY", DEFAULT_MIN_QUANTITY)
            ),
            allow_negative_stock=_env_bool("BOUTIQUE_POS_ALLOW_NEGATIVE_STOCK", True),
            return_policy=os.environ.get("BOUTIQUE_POS_RETURN_POLICY", RETURN_POLICY_SINGLE),
        )
