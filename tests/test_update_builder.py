import pytest

from boutique_pos.utils.sql import UNSET, build_update


def test_only_changed_columns_are_set():
    sql, params = build_update(
        "products",
        {"name": "Linen Shirt", "brand": UNSET, "color": None},
        allowed=("name", "brand", "color"),
        key_column="product_id",
        key_value=7,
        touch_column="updated_at",
    )
    assert sql == (
        "UPDATE products SET name = ?, color = ?, updated_at = CURRENT_TIMESTAMP "
        "WHERE product_id = ?"
    )
    assert params == ["Linen Shirt", None, 7]


def test_nothing_to_update_returns_none():
    assert build_update(
        "customers", {"notes": UNSET}, allowed=("notes",), key_column="customer_id", key_value=1
    ) is None


def test_values_are_bound_not_interpolated():
    sql, params = build_update(
        "customers",
        {"notes": "x'); DROP TABLE customers; --"},
        allowed=("notes",),
        key_column="customer_id",
        key_value=1,
    )
    assert "DROP" not in sql
    assert params[0].startswith("x');")


def test_unknown_column_is_rejected():
    with pytest.raises(ValueError):
        build_update(
            "customers", {"is_admin": 1}, allowed=("notes",), key_column="customer_id", key_value=1
        )
