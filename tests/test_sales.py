import re
import sqlite3

import pytest

from boutique_pos.constants import MOVEMENT_OUT, REASON_SALE
from boutique_pos.database.errors import NotFoundError, StorageError, ValidationError
from boutique_pos.database.repositories import NewSale, NewSaleLine, SalesRepo, StockRepo

OPENING_STOCK = 10  # seeded by the ids fixture


def _two_line_sale(ids, **kwargs) -> NewSale:
    return NewSale(
        items=[
            NewSaleLine(ids["p1"], ids["size_m"], 2, 10.0),
            NewSaleLine(ids["p2"], ids["size_42"], 1, 20.0),
        ],
        discount=5,
        **kwargs,
    )


def test_sale_totals_stock_and_movements(conn, ids):
    stock = StockRepo(conn)
    sale = SalesRepo(conn).create_sale(_two_line_sale(ids))

    assert sale.gross_amount == 40
    assert sale.discount == 5
    assert sale.net_amount == 35
    assert re.fullmatch(r"S-[A-Z0-9]{8}", sale.sale_no)

    assert stock.current_quantity(ids["p1"], ids["size_m"]) == OPENING_STOCK - 2
    assert stock.current_quantity(ids["p2"], ids["size_42"]) == OPENING_STOCK - 1

    sale_moves = [
        m for m in stock.movements() if m.reason == REASON_SALE
    ]
    assert len(sale_moves) == 2
    assert all(m.kind == MOVEMENT_OUT for m in sale_moves)
    assert all(m.notes == f"Sale: {sale.sale_no}" for m in sale_moves)
    assert sorted(m.quantity for m in sale_moves) == [1, 2]


def test_sale_with_customer_carries_display_name(conn, ids):
    sale = SalesRepo(conn).create_sale(
        _two_line_sale(ids, customer_id=ids["customer"], payment_method="credit")
    )
    assert sale.customer_name == "Aysel Mammadova"
    assert sale.payment_method == "credit"


def test_sale_with_items_lists_lines(conn, ids):
    repo = SalesRepo(conn)
    sale = repo.create_sale(_two_line_sale(ids))
    full = repo.get_sale_with_items(sale.sale_id)
    assert full.sale.sale_no == sale.sale_no
    assert [(i.product_id, i.quantity, i.line_total) for i in full.items] == [
        (ids["p1"], 2, 20.0),
        (ids["p2"], 1, 20.0),
    ]
    assert all(i.returned_quantity == 0 for i in full.items)


@pytest.mark.parametrize(
    "sale_kwargs, message",
    [
        ({"items": []}, "at least one item"),
        ({"payment_method": "barter"}, "payment method"),
        ({"payment_method": "credit"}, "needs a customer"),
        ({"discount": -1}, "Discount"),
        ({"discount": 41}, "exceed"),
    ],
)
def test_sale_validation(conn, ids, sale_kwargs, message):
    base = _two_line_sale(ids)
    new_sale = NewSale(
        items=sale_kwargs.get("items", base.items),
        discount=sale_kwargs.get("discount", base.discount),
        payment_method=sale_kwargs.get("payment_method", base.payment_method),
    )
    with pytest.raises(ValidationError, match=message):
        SalesRepo(conn).create_sale(new_sale)


@pytest.mark.parametrize("qty", [0, -1, 1.5])
def test_sale_rejects_bad_quantities(conn, ids, qty):
    with pytest.raises(ValidationError):
        SalesRepo(conn).create_sale(NewSale(items=[NewSaleLine(ids["p1"], ids["size_m"], qty, 10)]))


def test_sale_unknown_references_leave_nothing_behind(conn, ids, count_rows):
    repo = SalesRepo(conn)
    with pytest.raises(NotFoundError):
        repo.create_sale(NewSale(items=[NewSaleLine(9999, ids["size_m"], 1, 10)]))
    with pytest.raises(NotFoundError):
        repo.create_sale(
            NewSale(items=[NewSaleLine(ids["p1"], ids["size_m"], 1, 10)], customer_id=9999)
        )
    assert count_rows("sales") == 0
    assert count_rows("sale_items") == 0


def test_failure_after_header_insert_rolls_everything_back(conn, ids, count_rows, monkeypatch):
    moves_before = count_rows("stock_movements")
    calls = {"n": 0}
    real_insert = SalesRepo._insert_item

    def flaky_insert(self, sale_id, line, created_at):
        calls["n"] += 1
        if calls["n"] == 2:
            raise sqlite3.OperationalError("disk I/O error")
        return real_insert(self, sale_id, line, created_at)

    monkeypatch.setattr(SalesRepo, "_insert_item", flaky_insert)
    with pytest.raises(sqlite3.OperationalError):
        SalesRepo(conn).create_sale(_two_line_sale(ids))

    assert count_rows("sales") == 0
    assert count_rows("sale_items") == 0
    assert count_rows("stock_movements") == moves_before
    stock = StockRepo(conn)
    assert stock.current_quantity(ids["p1"], ids["size_m"]) == OPENING_STOCK
    assert stock.current_quantity(ids["p2"], ids["size_42"]) == OPENING_STOCK


def test_service_wraps_storage_failures(service, ids, count_rows, monkeypatch):
    def broken(self, *a, **kw):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(SalesRepo, "_insert_item", broken)
    with pytest.raises(StorageError, match="create sale failed") as exc:
        service.create_sale(_two_line_sale(ids))
    assert isinstance(exc.value.__cause__, sqlite3.OperationalError)
    assert count_rows("sales") == 0


def test_list_and_customer_sales(conn, ids):
    repo = SalesRepo(conn)
    repo.create_sale(_two_line_sale(ids, created_at="2026-03-01 10:00:00"))
    credit = repo.create_sale(
        _two_line_sale(ids, customer_id=ids["customer"], payment_method="credit",
                       created_at="2026-03-05 12:30:00")
    )

    assert [s.sale_id for s in repo.list_sales("2026-03-04", "2026-03-31")] == [credit.sale_id]
    assert len(repo.list_sales()) == 2
    assert [s.sale_id for s in repo.customer_sales(ids["customer"])] == [credit.sale_id]
    with pytest.raises(NotFoundError):
        repo.customer_sales(9999)
