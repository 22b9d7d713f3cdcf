import pytest

from boutique_pos.database.errors import NotFoundError
from boutique_pos.database.repositories import (
    NewReturn,
    NewReturnLine,
    NewSale,
    NewSaleLine,
    ReportingRepo,
    ReturnsRepo,
    SalesRepo,
    StockRepo,
    return_status,
)


@pytest.fixture()
def history(conn, ids):
    """
    March 2020:  sale A (cash)   P1 2x10 + P2 1x20, discount 5   on the 2nd
                 sale B (credit) P1 1x10                         on the 2nd
                 return of 1 P1 from sale A                      on the 3rd
                 5 P1/M received at cost 6                       on the 1st
    April 2020:  sale C (cash)   P2 1x20                         on the 10th
    """
    sales = SalesRepo(conn)
    StockRepo(conn).receive(
        product_id=ids["p1"], size_id=ids["size_m"], quantity=5, created_at="2020-03-01 09:00:00"
    )
    a = sales.create_sale(NewSale(
        items=[NewSaleLine(ids["p1"], ids["size_m"], 2, 10.0),
               NewSaleLine(ids["p2"], ids["size_42"], 1, 20.0)],
        discount=5, created_at="2020-03-02 10:00:00",
    ))
    b = sales.create_sale(NewSale(
        items=[NewSaleLine(ids["p1"], ids["size_m"], 1, 10.0)],
        payment_method="credit", customer_id=ids["customer"], created_at="2020-03-02 16:45:00",
    ))
    ReturnsRepo(conn).create_return(NewReturn(
        a.sale_id, [NewReturnLine(ids["p1"], ids["size_m"], 1)], created_at="2020-03-03 11:00:00",
    ))
    c = sales.create_sale(NewSale(
        items=[NewSaleLine(ids["p2"], ids["size_42"], 1, 20.0)], created_at="2020-04-10 12:00:00",
    ))
    return {"a": a, "b": b, "c": c}


def test_return_status_labels():
    assert return_status(0, 3) == "none"
    assert return_status(1, 3) == "partial"
    assert return_status(3, 3) == "full"


def test_daily_and_monthly_sales(conn, ids, history):
    reports = ReportingRepo(conn)
    daily = reports.daily_sales("2020-03-01", "2020-03-31")
    assert daily == [
        {"day": "2020-03-02", "sale_count": 2, "gross": 50.0, "discount": 5.0, "net": 45.0}
    ]
    monthly = reports.monthly_sales("2020-01-01", "2020-12-31")
    assert [(m["month"], m["sale_count"], m["net"]) for m in monthly] == [
        ("2020-04", 1, 20.0),
        ("2020-03", 2, 45.0),
    ]


def test_summaries_are_zero_filled(conn, ids, history):
    reports = ReportingRepo(conn)
    day = reports.daily_summary("2020-03-02")
    assert (day["sale_count"], day["gross"], day["net"], day["items_sold"], day["credit_sales"]) == (
        2, 50.0, 45.0, 4, 10.0
    )
    assert day["return_count"] == 0

    next_day = reports.daily_summary("2020-03-03")
    assert (next_day["sale_count"], next_day["net"]) == (0, 0.0)
    assert (next_day["return_count"], next_day["returns_total"]) == (1, 10.0)

    empty = reports.daily_summary("1999-01-01")
    assert empty["sale_count"] == 0 and empty["gross"] == 0.0 and empty["items_sold"] == 0

    month = reports.monthly_summary("2020-03")
    assert (month["sale_count"], month["returns_total"], month["items_sold"]) == (2, 10.0, 4)


def test_profit_report_nets_returns_and_discounts(conn, ids, history):
    report = ReportingRepo(conn).profit_report("2020-03-01", "2020-03-31")
    rows = {(r["product_id"], r["size_id"]): r for r in report["rows"]}

    p1 = rows[(ids["p1"], ids["size_m"])]
    assert (p1["quantity"], p1["revenue"], p1["cost"], p1["profit"]) == (2, 20.0, 12.0, 8.0)
    p2 = rows[(ids["p2"], ids["size_42"])]
    assert (p2["quantity"], p2["revenue"], p2["cost"], p2["profit"]) == (1, 20.0, 12.0, 8.0)

    assert report["totals"] == {
        "quantity": 3,
        "revenue": 40.0,
        "cost": 24.0,
        "profit": 16.0,
        "discount": 5.0,
        "net_profit": 11.0,
    }


def test_profit_report_prorates_discount_by_category(conn, ids, history):
    report = ReportingRepo(conn).profit_report("2020-03-01", "2020-03-31", ids["cat_shirts"])
    assert [r["product_id"] for r in report["rows"]] == [ids["p1"]]
    assert report["totals"]["profit"] == 8.0
    assert report["totals"]["discount"] == 2.5
    assert report["totals"]["net_profit"] == 5.5


def test_profit_report_empty_period(conn, ids):
    report = ReportingRepo(conn).profit_report("1999-01-01", "1999-01-31")
    assert report["rows"] == []
    assert report["totals"]["net_profit"] == 0.0


def test_product_statistics(conn, ids, history):
    stats = ReportingRepo(conn).product_statistics("2020-03-01", "2020-03-31")
    rows = {r["product_id"]: r for r in stats["rows"]}

    p1 = rows[ids["p1"]]
    assert (p1["in_qty"], p1["in_value"]) == (5, 30.0)
    assert (p1["sold_qty"], p1["revenue"], p1["cost"], p1["profit"]) == (2, 20.0, 12.0, 8.0)
    assert p1["avg_unit_margin"] == 4.0
    assert p1["current_stock"] == 10 + 5 - 3 + 1

    p2 = rows[ids["p2"]]
    assert (p2["in_qty"], p2["sold_qty"], p2["profit"]) == (0, 1, 8.0)
    assert p2["current_stock"] == 10 - 2

    assert stats["totals"]["profit"] == 16.0
    assert stats["totals"]["avg_margin_percent"] == pytest.approx(66.67)


def test_sales_list_range_and_counts(conn, ids, history):
    rows = ReportingRepo(conn).sales_list("2020-03-01", "2020-03-31")
    by_id = {r["sale_id"]: r for r in rows}
    assert set(by_id) == {history["a"].sale_id, history["b"].sale_id}
    a = by_id[history["a"].sale_id]
    assert (a["item_count"], a["sold_qty"], a["returned_qty"], a["return_status"]) == (
        2, 3, 1, "partial"
    )
    assert by_id[history["b"].sale_id]["customer_name"] == "Aysel Mammadova"


def test_low_stock_ascending_with_category_filter(conn, ids):
    stock = StockRepo(conn)
    stock.set_quantity(product_id=ids["p1"], size_id=ids["size_m"], quantity=5)
    stock.set_quantity(product_id=ids["p2"], size_id=ids["size_42"], quantity=2)

    reports = ReportingRepo(conn)
    assert [(r["product_id"], r["quantity"]) for r in reports.low_stock()] == [
        (ids["p2"], 2),
        (ids["p1"], 5),
    ]
    assert [r["product_id"] for r in reports.low_stock(ids["cat_footwear"])] == [ids["p2"]]


def test_stock_valuation_skips_empty_rows(conn, ids):
    reports = ReportingRepo(conn)
    stock = StockRepo(conn)
    assert reports.stock_valuation()["totals"] == {
        "product_count": 2,
        "quantity": 20,
        "cost_value": 180.0,
        "retail_value": 300.0,
        "potential_margin": 120.0,
    }

    stock.set_quantity(product_id=ids["p1"], size_id=ids["size_m"], quantity=0)
    valuation = reports.stock_valuation()
    assert [r["product_id"] for r in valuation["rows"]] == [ids["p2"]]
    assert valuation["totals"]["product_count"] == 1
    assert valuation["totals"]["potential_margin"] == 80.0

    stock.set_quantity(product_id=ids["p2"], size_id=ids["size_42"], quantity=0)
    assert reports.stock_valuation() == {
        "rows": [],
        "totals": {
            "product_count": 0,
            "quantity": 0,
            "cost_value": 0.0,
            "retail_value": 0.0,
            "potential_margin": 0.0,
        },
    }


def test_product_movements(conn, ids, history):
    reports = ReportingRepo(conn)
    moves = reports.product_movements(ids["p1"], "2020-03-01", "2020-03-31")
    assert [(m["reason"], m["kind"], m["quantity"]) for m in moves] == [
        ("restock", "in", 5),
        ("sale", "out", 2),
        ("sale", "out", 1),
        ("return", "in", 1),
    ]
    with pytest.raises(NotFoundError):
        reports.product_movements(9999)
