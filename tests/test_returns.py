import sqlite3

import pytest

from boutique_pos.config import LedgerConfig
from boutique_pos.constants import MOVEMENT_IN, PAYMENT_RETURN_CREDIT, REASON_RETURN
from boutique_pos.database.errors import ConflictError, NotFoundError, ValidationError
from boutique_pos.database.repositories import (
    CustomersRepo,
    DebtPaymentsRepo,
    NewReturn,
    NewReturnLine,
    NewSale,
    NewSaleLine,
    ReportingRepo,
    ReturnsRepo,
    SalesRepo,
    StockRepo,
    get_returnable_quantities,
)

OPENING_STOCK = 10  # seeded by the ids fixture


@pytest.fixture()
def sale(conn, ids):
    return SalesRepo(conn).create_sale(
        NewSale(
            items=[
                NewSaleLine(ids["p1"], ids["size_m"], 2, 10.0),
                NewSaleLine(ids["p2"], ids["size_42"], 1, 20.0),
            ],
            discount=5,
        )
    )


def _status(conn, sale_id):
    row = next(r for r in ReportingRepo(conn).sales_list() if r["sale_id"] == sale_id)
    return row["return_status"]


def test_partial_then_full_return_status(conn, ids, sale):
    repo = ReturnsRepo(conn)
    assert _status(conn, sale.sale_id) == "none"

    repo.create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 2)]))
    assert _status(conn, sale.sale_id) == "partial"

    repo.create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p2"], ids["size_42"], 1)]))
    assert _status(conn, sale.sale_id) == "full"


def test_return_restocks_and_logs_in_movements(conn, ids, sale):
    ret = ReturnsRepo(conn).create_return(
        NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)], reason="Too small")
    )
    assert ret.sale_no == sale.sale_no
    assert ret.total_amount == 10.0
    assert ret.return_no.startswith("R-")

    stock = StockRepo(conn)
    assert stock.current_quantity(ids["p1"], ids["size_m"]) == OPENING_STOCK - 2 + 1
    last = stock.movements(product_id=ids["p1"])[-1]
    assert (last.kind, last.reason, last.quantity) == (MOVEMENT_IN, REASON_RETURN, 1)
    assert last.notes == f"Return: {ret.return_no}"

    full = ReturnsRepo(conn).get_return_with_items(ret.return_id)
    assert [(i.product_id, i.quantity, i.unit_price) for i in full.items] == [(ids["p1"], 1, 10.0)]


def test_second_return_of_same_line_conflicts_and_changes_nothing(conn, ids, sale, count_rows):
    repo = ReturnsRepo(conn)
    repo.create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))

    stock = StockRepo(conn)
    qty_before = stock.current_quantity(ids["p1"], ids["size_m"])
    counts = {t: count_rows(t) for t in ("returns", "return_items", "stock_movements", "debt_payments")}

    with pytest.raises(ConflictError, match="already been returned"):
        repo.create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))

    assert stock.current_quantity(ids["p1"], ids["size_m"]) == qty_before
    assert {t: count_rows(t) for t in counts} == counts


def test_cumulative_policy_allows_up_to_sold_quantity(conn, ids, sale):
    repo = ReturnsRepo(conn, LedgerConfig(return_policy="cumulative"))
    repo.create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))
    repo.create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))
    with pytest.raises(ConflictError, match="already returned"):
        repo.create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))

    assert repo.returned_quantities(sale.sale_id) == {(ids["p1"], ids["size_m"]): 2}
    assert get_returnable_quantities(conn, sale.sale_id) == {
        (ids["p1"], ids["size_m"]): 0,
        (ids["p2"], ids["size_42"]): 1,
    }


def test_returning_more_than_sold_conflicts(conn, ids, sale):
    with pytest.raises(ConflictError, match="only 2 sold"):
        ReturnsRepo(conn).create_return(
            NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 3)])
        )


def test_line_not_in_sale_is_rejected(conn, ids, sale):
    with pytest.raises(ValidationError, match="not part of this sale"):
        ReturnsRepo(conn).create_return(
            NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_xl"], 1)])
        )


def test_unknown_sale(conn, ids):
    with pytest.raises(NotFoundError):
        ReturnsRepo(conn).create_return(NewReturn(424242, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))


def test_return_of_credit_sale_reduces_debt(conn, ids):
    credit_sale = SalesRepo(conn).create_sale(
        NewSale(
            items=[NewSaleLine(ids["p2"], ids["size_42"], 2, 20.0)],
            payment_method="credit",
            customer_id=ids["customer"],
        )
    )
    customers = CustomersRepo(conn)
    assert customers.outstanding_debt(ids["customer"]) == 40

    ret = ReturnsRepo(conn).create_return(
        NewReturn(credit_sale.sale_id, [NewReturnLine(ids["p2"], ids["size_42"], 1)])
    )
    assert ret.customer_name == "Aysel Mammadova"
    assert customers.outstanding_debt(ids["customer"]) == 20

    payments = DebtPaymentsRepo(conn).customer_payments(ids["customer"])
    assert [(p.method, p.amount) for p in payments] == [(PAYMENT_RETURN_CREDIT, 20.0)]


def test_cash_sale_return_books_no_payment(conn, ids, sale, count_rows):
    ReturnsRepo(conn).create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))
    assert count_rows("debt_payments") == 0


def test_sale_items_report_returned_quantity(conn, ids, sale):
    ReturnsRepo(conn).create_return(NewReturn(sale.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)]))
    items = SalesRepo(conn).get_sale_with_items(sale.sale_id).items
    assert {(i.product_id, i.returned_quantity) for i in items} == {(ids["p1"], 1), (ids["p2"], 0)}


def test_failure_after_return_header_rolls_everything_back(
    conn, ids, sale, count_rows, monkeypatch
):
    stock = StockRepo(conn)
    qty_before = {
        key: stock.current_quantity(*key)
        for key in ((ids["p1"], ids["size_m"]), (ids["p2"], ids["size_42"]))
    }
    moves_before = count_rows("stock_movements")
    calls = {"n": 0}
    real_adjust = StockRepo.adjust

    def flaky_adjust(self, **kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise sqlite3.OperationalError("disk I/O error")
        return real_adjust(self, **kwargs)

    monkeypatch.setattr(StockRepo, "adjust", flaky_adjust)
    with pytest.raises(sqlite3.OperationalError):
        ReturnsRepo(conn).create_return(
            NewReturn(
                sale.sale_id,
                [
                    NewReturnLine(ids["p1"], ids["size_m"], 1),
                    NewReturnLine(ids["p2"], ids["size_42"], 1),
                ],
            )
        )

    assert calls["n"] == 2
    assert count_rows("returns") == 0
    assert count_rows("return_items") == 0
    assert count_rows("stock_movements") == moves_before
    assert {key: stock.current_quantity(*key) for key in qty_before} == qty_before


def test_failed_return_credit_rolls_back_the_return(conn, ids, count_rows, monkeypatch):
    credit_sale = SalesRepo(conn).create_sale(
        NewSale(
            items=[NewSaleLine(ids["p2"], ids["size_42"], 2, 20.0)],
            payment_method="credit",
            customer_id=ids["customer"],
        )
    )
    stock = StockRepo(conn)
    qty_before = stock.current_quantity(ids["p2"], ids["size_42"])
    moves_before = count_rows("stock_movements")

    def broken(self, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(DebtPaymentsRepo, "_insert_payment", broken)
    with pytest.raises(sqlite3.OperationalError):
        ReturnsRepo(conn).create_return(
            NewReturn(credit_sale.sale_id, [NewReturnLine(ids["p2"], ids["size_42"], 1)])
        )

    assert count_rows("returns") == 0
    assert count_rows("return_items") == 0
    assert count_rows("debt_payments") == 0
    assert count_rows("stock_movements") == moves_before
    assert stock.current_quantity(ids["p2"], ids["size_42"]) == qty_before
    assert CustomersRepo(conn).outstanding_debt(ids["customer"]) == 40
