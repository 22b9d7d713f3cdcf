"""
boutique_pos/bridge.py

Purpose
-------
In-process command surface for the UI shell. A view calls

    bridge.invoke("create_sale", {"items": [...], "discount": 5})

and always gets a plain dict back:

    {"ok": True,  "data": <JSON-friendly result>}
    {"ok": False, "error": "<message for the operator>"}

Unknown commands and malformed payloads are reported the same way; nothing
raises out of invoke(). Writes announce themselves through Qt signals so open
views can refresh.
"""
from __future__ import annotations

import dataclasses
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, Signal, Slot

from .database.errors import DomainError
from .database.repositories import NewReturn, NewReturnLine, NewSale, NewSaleLine
from .service import PosService
from .utils.loggers import get_logger

_log = get_logger(__name__)


class InvalidPayload(ValueError):
    pass


def _to_plain(value: Any) -> Any:
    """Dataclasses -> dicts, tuple-keyed quantity maps -> row lists."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, dict):
        if value and all(isinstance(k, tuple) for k in value):
            return [
                {"product_id": k[0], "size_id": k[1], "quantity": v}
                for k, v in sorted(value.items())
            ]
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


def _require(payload: dict, *keys: str) -> list:
    missing = [k for k in keys if k not in payload]
    if missing:
        raise InvalidPayload(f"missing field(s): {', '.join(missing)}")
    return [payload[k] for k in keys]


def _sale_from_payload(payload: dict) -> NewSale:
    (items,) = _require(payload, "items")
    fields = {k: v for k, v in payload.items() if k != "items"}
    return NewSale(items=[NewSaleLine(**line) for line in items], **fields)


def _return_from_payload(payload: dict) -> NewReturn:
    sale_id, items = _require(payload, "sale_id", "items")
    fields = {k: v for k, v in payload.items() if k not in ("sale_id", "items")}
    return NewReturn(
        sale_id=sale_id, items=[NewReturnLine(**line) for line in items], **fields
    )


class PosBridge(QObject):
    """QObject wrapper that turns command names plus dict payloads into PosService calls."""

    saleCreated = Signal(int)            # sale_id
    returnCreated = Signal(int)          # return_id
    debtPaymentRecorded = Signal(int)    # customer_id
    stockChanged = Signal()
    commandFailed = Signal(str, str)     # command, message

    def __init__(self, service: PosService, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self.service = service
        self._commands: dict[str, Callable[[dict], Any]] = {}
        self._register_defaults()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def register(self, name: str, handler: Callable[[dict], Any]) -> None:
        self._commands[name] = handler

    def commands(self) -> list[str]:
        return sorted(self._commands)

    def _register_defaults(self) -> None:
        s = self.service

        def kw(method: Callable) -> Callable[[dict], Any]:
            return lambda p: method(**p)

        # catalog
        self.register("list_categories", kw(s.list_categories))
        self.register("create_category", kw(s.create_category))
        self.register("list_sizes", kw(s.list_sizes))
        self.register("create_size", kw(s.create_size))
        self.register("list_colors", kw(s.list_colors))

        # products
        self.register("list_products", kw(s.list_products))
        self.register("get_product", kw(s.get_product))
        self.register("find_product_by_barcode", kw(s.find_product_by_barcode))
        self.register("search_products", kw(s.search_products))
        self.register("create_product", kw(s.create_product))
        self.register(
            "update_product",
            lambda p: s.update_product(_require(p, "product_id")[0], **p.get("changes", {})),
        )

        # stock
        self.register("list_stock", kw(s.list_stock))
        self.register("stock_for_product", kw(s.stock_for_product))
        self.register("current_quantity", kw(s.current_quantity))
        self.register("receive_stock", self._stock_write(s.receive_stock))
        self.register("set_stock", self._stock_write(s.set_stock))
        self.register("remove_stock", self._stock_write(s.remove_stock))
        self.register("adjust_stock", self._stock_write(s.adjust_stock))
        self.register("stock_movements", kw(s.stock_movements))

        # customers & debt
        self.register("list_customers", kw(s.list_customers))
        self.register("search_customers", kw(s.search_customers))
        self.register("get_customer", kw(s.get_customer))
        self.register("create_customer", kw(s.create_customer))
        self.register(
            "update_customer",
            lambda p: s.update_customer(_require(p, "customer_id")[0], **p.get("changes", {})),
        )
        self.register("outstanding_debt", kw(s.outstanding_debt))
        self.register("debt_breakdown", self._debt_breakdown)
        self.register("debt_summary", kw(s.debt_summary))
        self.register("record_debt_payment", self._record_debt_payment)
        self.register("list_debt_payments", kw(s.list_debt_payments))
        self.register("customer_payments", kw(s.customer_payments))

        # sales & returns
        self.register("create_sale", self._create_sale)
        self.register("get_sale", kw(s.get_sale))
        self.register("get_sale_with_items", kw(s.get_sale_with_items))
        self.register("list_sales", kw(s.list_sales))
        self.register("customer_sales", kw(s.customer_sales))
        self.register("create_return", self._create_return)
        self.register("get_return_with_items", kw(s.get_return_with_items))
        self.register("list_returns", kw(s.list_returns))
        self.register("returned_quantities", kw(s.returned_quantities))
        self.register("returnable_quantities", kw(s.returnable_quantities))

        # reports
        for name in (
            "daily_sales", "monthly_sales", "daily_summary", "monthly_summary",
            "low_stock", "sales_list", "profit_report", "product_statistics",
            "product_movements", "stock_valuation",
        ):
            self.register(name, kw(getattr(s, name)))

    # ------------------------------------------------------------------
    # Write handlers (emit after success)
    # ------------------------------------------------------------------
    def _stock_write(self, method: Callable) -> Callable[[dict], Any]:
        def handler(p: dict) -> Any:
            result = method(**p)
            self.stockChanged.emit()
            return result

        return handler

    def _create_sale(self, p: dict):
        sale = self.service.create_sale(_sale_from_payload(p))
        self.saleCreated.emit(sale.sale_id)
        self.stockChanged.emit()
        return sale

    def _create_return(self, p: dict):
        ret = self.service.create_return(_return_from_payload(p))
        self.returnCreated.emit(ret.return_id)
        self.stockChanged.emit()
        if ret.customer_id is not None:
            self.debtPaymentRecorded.emit(ret.customer_id)
        return ret

    def _record_debt_payment(self, p: dict):
        payment = self.service.record_debt_payment(**p)
        self.debtPaymentRecorded.emit(payment.customer_id)
        return payment

    def _debt_breakdown(self, p: dict) -> dict:
        b = self.service.debt_breakdown(**p)
        out = dataclasses.asdict(b)
        out["remaining"] = b.remaining
        out["outstanding"] = b.outstanding
        return out

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    @Slot(str, dict, result=dict)
    def invoke(self, command: str, payload: Optional[dict] = None) -> dict:
        handler = self._commands.get(command)
        if handler is None:
            return self._fail(command, f"Unknown command: {command}")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return self._fail(command, f"Invalid payload for {command}: expected an object")

        try:
            result = handler(payload)
        except DomainError as e:
            return self._fail(command, str(e))
        except (InvalidPayload, TypeError) as e:
            return self._fail(command, f"Invalid payload for {command}: {e}")
        return {"ok": True, "data": _to_plain(result)}

    def _fail(self, command: str, message: str) -> dict:
        _log.warning("command %s failed: %s", command, message)
        self.commandFailed.emit(command, message)
        return {"ok": False, "error": message}
