from __future__ import annotations
from dataclasses import dataclass
import sqlite3
from typing import Optional

from ..errors import NotFoundError, ValidationError
from ..transactions import immediate_tx
from ...constants import DEBT_PAYMENT_METHODS, PAYMENT_CASH
from ...utils.helpers import now_str, round_money
from ...utils.validators import is_strictly_positive_number


@dataclass
class DebtPayment:
    payment_id: int
    customer_id: int
    customer_name: str
    amount: float
    method: str
    notes: str | None
    created_at: str


_SELECT = """
    SELECT dp.payment_id, dp.customer_id,
           c.first_name || ' ' || c.last_name AS customer_name,
           CAST(dp.amount AS REAL) AS amount, dp.method, dp.notes, dp.created_at
    FROM debt_payments dp
    JOIN customers c ON c.customer_id = dp.customer_id
"""


class DebtPaymentsRepo:
    """
    Payments against a customer's debt.

    No balance check: paying more than is owed is allowed and simply shows up
    as a negative remaining balance.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def _insert_payment(
        self,
        *,
        customer_id: int,
        amount: float,
        method: str,
        notes: str | None,
        created_at: str,
    ) -> int:
        """Raw insert; callers own the transaction."""
        cur = self.conn.execute(
            """
            INSERT INTO debt_payments (customer_id, amount, method, notes, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (customer_id, round_money(amount), method, notes, created_at),
        )
        return int(cur.lastrowid)

    def record_payment(
        self,
        customer_id: int,
        amount: float,
        method: str = PAYMENT_CASH,
        notes: str | None = None,
        created_at: str | None = None,
    ) -> DebtPayment:
        if not is_strictly_positive_number(amount):
            raise ValidationError("Payment amount must be greater than zero.")
        if method not in DEBT_PAYMENT_METHODS:
            raise ValidationError(f"Unknown payment method: {method!r}.")

        with immediate_tx(self.conn):
            if self.conn.execute(
                "SELECT 1 FROM customers WHERE customer_id = ?", (customer_id,)
            ).fetchone() is None:
                raise NotFoundError(f"Customer {customer_id} not found.")
            payment_id = self._insert_payment(
                customer_id=customer_id,
                amount=float(amount),
                method=method,
                notes=notes,
                created_at=created_at or now_str(),
            )
        return self.get(payment_id)

    def get(self, payment_id: int) -> DebtPayment | None:
        r = self.conn.execute(_SELECT + " WHERE dp.payment_id = ?", (payment_id,)).fetchone()
        return DebtPayment(**r) if r else None

    def list_payments(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[DebtPayment]:
        sql = _SELECT + """
            WHERE (:date_from IS NULL OR DATE(dp.created_at) >= DATE(:date_from))
              AND (:date_to   IS NULL OR DATE(dp.created_at) <= DATE(:date_to))
            ORDER BY dp.created_at DESC, dp.payment_id DESC
        """
        rows = self.conn.execute(sql, {"date_from": date_from, "date_to": date_to}).fetchall()
        return [DebtPayment(**r) for r in rows]

    def customer_payments(self, customer_id: int) -> list[DebtPayment]:
        if self.conn.execute(
            "SELECT 1 FROM customers WHERE customer_id = ?", (customer_id,)
        ).fetchone() is None:
            raise NotFoundError(f"Customer {customer_id} not found.")
        rows = self.conn.execute(
            _SELECT + " WHERE dp.customer_id = ? ORDER BY dp.created_at DESC, dp.payment_id DESC",
            (customer_id,),
        ).fetchall()
        return [DebtPayment(**r) for r in rows]
