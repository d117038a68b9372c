from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from checkout import commit_order, generate_invoice_number
from errors import NotFoundError, StockError, ValidationError
from models import CartLine, CartSession


def test_reference_order_commit(desk, fixed_now) -> None:
    desk.set_customer("Sharma Traders", phone="9800000000")
    desk.set_discount(10)
    desk.add_to_cart("P-A", 3)

    order = desk.checkout(now=fixed_now)

    assert order.total_amount == Decimal("300.00")
    assert order.discount_amount == Decimal("30.00")
    assert order.total_gst == Decimal("48.60")
    assert order.grand_total == Decimal("318.60")
    assert order.discount_percentage == Decimal("10")
    assert order.customer_phone == "9800000000"
    assert order.customer_address is None
    assert order.date == fixed_now
    assert order.invoice_number.startswith("INV-")
    assert desk.db.get_product("P-A").stock_quantity == 2


def test_commit_freezes_line_snapshots(desk, fixed_now) -> None:
    desk.set_customer("Sharma Traders")
    desk.add_to_cart("P-B", 2)
    order = desk.checkout(now=fixed_now)

    (item,) = order.items
    assert item.product_name == "Toilet Roll 4-ply"
    assert item.unit_price == Decimal("45.50")
    assert item.subtotal == Decimal("91.00")
    assert item.total_with_gst == Decimal("101.92")

    product = desk.db.get_product("P-B")
    product.name = "Renamed roll"
    product.selling_price = Decimal("99")
    desk.db.update_product(product)
    stored = desk.db.get_order(order.id)
    assert stored.items[0].product_name == "Toilet Roll 4-ply"
    assert stored.items[0].unit_price == Decimal("45.50")


def test_order_totals_are_consistent(desk, fixed_now) -> None:
    desk.set_customer("Mixed Cart Co")
    desk.set_discount("12.5")
    desk.add_to_cart("P-A", 4)
    desk.add_to_cart("P-B", 9)
    order = desk.checkout(now=fixed_now)

    recomputed = order.total_amount - order.discount_amount + order.total_gst
    assert abs(order.grand_total - recomputed) <= Decimal("0.01")


def test_commit_clears_cart(desk, fixed_now) -> None:
    desk.set_customer("Sharma Traders", gstin="22aaaaa0000a1z5")
    desk.set_discount(5)
    desk.add_to_cart("P-A", 1)
    order = desk.checkout(now=fixed_now)

    assert order.customer_gstin == "22AAAAA0000A1Z5"
    assert desk.cart == CartSession()
    assert desk.db.get_order_by_invoice(order.invoice_number) == order


def test_insufficient_stock_rejected_without_side_effects(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("P-A", 6)], customer_name="Sharma Traders")

    with pytest.raises(StockError) as excinfo:
        commit_order(cart, catalog, now=fixed_now)

    assert excinfo.value.available == 5
    assert excinfo.value.shortages[0].product_id == "P-A"
    assert excinfo.value.shortages[0].requested == 6
    assert catalog.get_product("P-A").stock_quantity == 5
    assert catalog.list_orders() == []
    assert cart.lines == [CartLine("P-A", 6)]


def test_every_short_line_is_reported(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("P-A", 9), CartLine("P-B", 41), CartLine("P-C", 1)],
                       customer_name="Sharma Traders")
    with pytest.raises(StockError) as excinfo:
        commit_order(cart, catalog, now=fixed_now)
    assert [s.product_id for s in excinfo.value.shortages] == ["P-A", "P-B", "P-C"]
    assert catalog.get_product("P-B").stock_quantity == 40


def test_duplicate_lines_are_checked_together(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("P-A", 3), CartLine("P-A", 3)], customer_name="Dup")
    with pytest.raises(StockError):
        commit_order(cart, catalog, now=fixed_now)


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_customer_rejected(catalog, fixed_now, name: str) -> None:
    cart = CartSession(lines=[CartLine("P-A", 1)], customer_name=name)
    with pytest.raises(ValidationError):
        commit_order(cart, catalog, now=fixed_now)
    assert catalog.get_product("P-A").stock_quantity == 5
    assert cart.lines == [CartLine("P-A", 1)]


def test_empty_cart_rejected(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("P-A", 0)], customer_name="Sharma Traders")
    with pytest.raises(ValidationError):
        commit_order(cart, catalog, now=fixed_now)
    assert catalog.list_orders() == []
    assert cart.lines == [CartLine("P-A", 0)]


@pytest.mark.parametrize("qty", [1.5, -1, True, "2", float("nan")])
def test_cart_line_rejects_bad_quantity(qty) -> None:
    with pytest.raises(ValidationError):
        CartLine("P-A", qty)


@pytest.mark.parametrize("discount", [Decimal("150"), Decimal("-5"), Decimal("NaN"), "inf"])
def test_cart_session_rejects_bad_discount(discount) -> None:
    with pytest.raises(ValidationError):
        CartSession(lines=[CartLine("P-A", 1)], customer_name="X", discount_percentage=discount)


def test_cart_session_coerces_discount() -> None:
    cart = CartSession(discount_percentage="12.5")
    assert cart.discount_percentage == Decimal("12.5")


def test_discount_changed_after_construction_is_rechecked(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("P-A", 1)], customer_name="X")
    cart.discount_percentage = Decimal("150")

    with pytest.raises(ValidationError):
        commit_order(cart, catalog, now=fixed_now)
    assert catalog.get_product("P-A").stock_quantity == 5
    assert catalog.list_orders() == []


def test_quantity_changed_after_construction_is_rechecked(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("P-A", 1)], customer_name="X")
    cart.lines[0].quantity = 1.5

    with pytest.raises(ValidationError):
        commit_order(cart, catalog, now=fixed_now)
    assert catalog.get_product("P-A").stock_quantity == 5


def test_cart_of_only_missing_products_rejected(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("GONE", 2)], customer_name="Sharma Traders")
    with pytest.raises(ValidationError):
        commit_order(cart, catalog, now=fixed_now)


def test_dangling_line_is_left_out_of_order(catalog, fixed_now) -> None:
    cart = CartSession(lines=[CartLine("GONE", 2), CartLine("P-A", 1)], customer_name="Sharma")
    order = commit_order(cart, catalog, now=fixed_now)
    assert [item.product_id for item in order.items] == ["P-A"]


def test_failed_append_rolls_back_stock(catalog, fixed_now) -> None:
    class BrokenLog:
        def invoice_number_exists(self, number):
            return False

        def append_order(self, order):
            raise RuntimeError("disk full")

    cart = CartSession(lines=[CartLine("P-A", 2), CartLine("P-B", 1)], customer_name="Sharma")
    with pytest.raises(RuntimeError):
        commit_order(cart, catalog, order_log=BrokenLog(), now=fixed_now)

    assert catalog.get_product("P-A").stock_quantity == 5
    assert catalog.get_product("P-B").stock_quantity == 40
    assert cart.lines == [CartLine("P-A", 2), CartLine("P-B", 1)]


def test_repeated_sales_never_drive_stock_negative(desk, fixed_now) -> None:
    sold = 0
    for attempt in range(4):
        desk.set_customer(f"Customer {attempt}")
        try:
            desk.add_to_cart("P-A", 2)
            desk.checkout(now=fixed_now)
            sold += 2
        except StockError:
            desk.clear_cart()
    assert sold == 4
    assert desk.db.get_product("P-A").stock_quantity == 1


def test_invoice_numbers_are_unique(desk, fixed_now) -> None:
    numbers = set()
    for _ in range(3):
        desk.set_customer("Same Instant Ltd")
        desk.add_to_cart("P-B", 1)
        numbers.add(desk.checkout(now=fixed_now).invoice_number)
    assert len(numbers) == 3


def test_invoice_number_uses_millisecond_suffix() -> None:
    now = datetime.fromtimestamp(1_700_000_123.456)
    assert generate_invoice_number(now) == "INV-123456"


# Cart commands

def test_add_merges_existing_line(desk) -> None:
    desk.add_to_cart("P-A", 2)
    desk.add_to_cart("P-A", 1)
    assert desk.cart.lines == [CartLine("P-A", 3)]


def test_add_beyond_stock_rejected(desk) -> None:
    desk.add_to_cart("P-A", 4)
    with pytest.raises(StockError):
        desk.add_to_cart("P-A", 2)
    assert desk.cart.quantity_of("P-A") == 4


def test_add_out_of_stock_rejected(desk) -> None:
    with pytest.raises(StockError):
        desk.add_to_cart("P-C", 1)
    assert desk.cart.lines == []


@pytest.mark.parametrize("qty", [0, -1, 1.5, True])
def test_add_invalid_quantity_rejected(desk, qty) -> None:
    with pytest.raises(ValidationError):
        desk.add_to_cart("P-A", qty)


def test_add_unknown_product_rejected(desk) -> None:
    with pytest.raises(NotFoundError):
        desk.add_to_cart("NOPE", 1)


def test_add_by_sku(desk) -> None:
    desk.add_by_sku("TR-B", 3)
    assert desk.cart.lines == [CartLine("P-B", 3)]


def test_update_quantity_to_zero_keeps_line(desk) -> None:
    desk.add_to_cart("P-A", 2)
    desk.update_quantity("P-A", 0)
    assert desk.cart.lines == [CartLine("P-A", 0)]
    assert desk.cart.is_empty


def test_update_quantity_above_stock_rejected(desk) -> None:
    desk.add_to_cart("P-A", 2)
    with pytest.raises(StockError):
        desk.update_quantity("P-A", 6)
    assert desk.cart.quantity_of("P-A") == 2


def test_remove_from_cart(desk) -> None:
    desk.add_to_cart("P-A", 1)
    desk.add_to_cart("P-B", 1)
    desk.remove_from_cart("P-A")
    assert desk.cart.lines == [CartLine("P-B", 1)]


@pytest.mark.parametrize("discount", [-1, "100.01", "abc", "nan", "sNaN", "inf", "-Infinity"])
def test_discount_out_of_range_rejected(desk, discount) -> None:
    with pytest.raises(ValidationError):
        desk.set_discount(discount)
    assert desk.cart.discount_percentage == 0


def test_blank_optional_customer_fields_become_none(desk) -> None:
    desk.set_customer("  Sharma  ", phone="  ", address="", gstin=None)
    assert desk.cart.customer_name == "Sharma"
    assert desk.cart.customer_phone is None
    assert desk.cart.customer_address is None
    assert desk.cart.customer_gstin is None
