from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

import pandas as pd

from checkout import SalesDesk
from conftest import make_product, png_bytes
from database import Database
from invoice import InvoiceAssets, decode_asset, render_invoice
from models import Vendor, VendorRequest
from utils import (
    backup_state,
    export_inventory_csv,
    export_orders_csv,
    generate_inventory_report,
    generate_sales_report,
    import_inventory_csv,
    orders_dataframe,
    restore_state,
    write_invoice_pdf,
)


def sell(desk, now, customer="Sharma Traders", sku="FF-A", qty=3, discount=10):
    desk.set_customer(customer, phone="9800000000")
    desk.set_discount(discount)
    desk.add_by_sku(sku, qty)
    return desk.checkout(now=now)


def test_invoice_pdf_is_written(desk, fixed_now, tmp_path) -> None:
    order = sell(desk, fixed_now)
    assets = InvoiceAssets(
        logo=decode_asset("logo", png_bytes(40, 20)),
        watermark=decode_asset("watermark", png_bytes(60, 60)),
        qr=decode_asset("qr", png_bytes(30, 30, (0, 0, 0))),
    )
    path = write_invoice_pdf(render_invoice(order, assets), str(tmp_path / "inv.pdf"),
                             title=order.invoice_number)

    data = (tmp_path / "inv.pdf").read_bytes()
    assert path == str(tmp_path / "inv.pdf")
    assert data.startswith(b"%PDF")


def test_multi_page_invoice_pdf(db, fixed_now, tmp_path) -> None:
    for n in range(60):
        db.add_product(make_product(f"P-{n}", f"SKU-{n}", f"Product {n}", stock=10))
    desk = SalesDesk(db)
    desk.set_customer("Bulk Buyer")
    for n in range(60):
        desk.add_to_cart(f"P-{n}", 1)
    document = render_invoice(desk.checkout(now=fixed_now))

    write_invoice_pdf(document, str(tmp_path / "long.pdf"))
    assert document.page_count > 1
    assert (tmp_path / "long.pdf").read_bytes().startswith(b"%PDF")


def test_inventory_csv_round_trip(catalog, tmp_path) -> None:
    path = tmp_path / "inventory.csv"
    export_inventory_csv(catalog, str(path))

    df = pd.read_csv(path)
    assert list(df["sku"]) == ["NP-C", "FF-A", "TR-B"]

    target = Database(":memory:")
    try:
        assert import_inventory_csv(target, str(path)) == 3
        product = target.get_product_by_sku("TR-B")
        assert product.id == "P-B"
        assert product.selling_price == Decimal("45.50")
        assert product.stock_quantity == 40
    finally:
        target.close()


def test_import_updates_existing_sku(catalog, tmp_path) -> None:
    path = tmp_path / "stock.csv"
    path.write_text("id,sku,name,category,unit,sellingPrice,gstPercentage,stockQuantity\n"
                    ",FF-A,Facial Tissue 100 pulls,Facial Tissue,packs,110,18,25\n"
                    ",KT-9,Kitchen Towel,Kitchen Towels,rolls,60,12,8\n")

    assert import_inventory_csv(catalog, str(path)) == 2
    updated = catalog.get_product("P-A")
    assert updated.selling_price == Decimal("110")
    assert updated.stock_quantity == 25
    added = catalog.get_product_by_sku("KT-9")
    assert added.id.startswith("PRD-")
    assert added.category.value == "Kitchen Towels"


def test_orders_export(desk, fixed_now, tmp_path) -> None:
    order = sell(desk, fixed_now)
    df = orders_dataframe([order])
    assert list(df["invoiceNumber"]) == [order.invoice_number]
    assert df["grandTotal"].iloc[0] == 318.6

    path = tmp_path / "orders.csv"
    export_orders_csv(desk.db, str(path))
    assert len(pd.read_csv(path)) == 1


def test_sales_report(desk, fixed_now, tmp_path) -> None:
    sell(desk, fixed_now)
    sell(desk, fixed_now.replace(hour=12), customer="Bose Stores", sku="TR-B", qty=2, discount=0)

    daily, summary = generate_sales_report(desk.db, file_path=str(tmp_path / "sales.csv"))
    assert len(daily) == 1
    assert daily["orders"].iloc[0] == 2
    assert summary["num_transactions"] == 2
    assert summary["total_sales"] == round(318.6 + 101.92, 2)
    assert summary["start_date"] == date(2026, 3, 14)
    assert (tmp_path / "sales.csv").exists()


def test_sales_report_out_of_range(desk, fixed_now) -> None:
    sell(desk, fixed_now)
    daily, message = generate_sales_report(desk.db, start_date="2026-04-01")
    assert daily is None
    assert "No sales data" in message


def test_inventory_report(catalog) -> None:
    df, summary = generate_inventory_report(catalog)
    assert summary["total_items"] == 3
    assert summary["out_of_stock_count"] == 1
    assert summary["low_stock_count"] == 0
    # cost 60 for every product: 5 + 40 + 0 units
    assert summary["total_value"] == 2700
    assert summary["category_counts"] == {"Facial Tissue": 1, "Napkins": 1, "Toilet Roll": 1}
    assert summary["pending_requests"] == 0


def test_inventory_report_counts_pending_requests(catalog) -> None:
    catalog.add_vendor(Vendor(id="V-1", name="Bengal Pulp Co"))
    for n, status in enumerate(["Pending", "Pending", "Approved"]):
        catalog.add_request(VendorRequest(id=f"REQ-{n}", vendor_id="V-1", vendor_name="Bengal Pulp Co",
                                          product_id="P-A", product_name="Facial Tissue 100 pulls",
                                          quantity=10, expected_date="2026-04-01", status=status))
    _, summary = generate_inventory_report(catalog)
    assert summary["pending_requests"] == 2


def test_inventory_report_empty(db) -> None:
    df, message = generate_inventory_report(db)
    assert df is None
    assert message == "No inventory data found."


def test_backup_and_restore(desk, fixed_now, tmp_path) -> None:
    db = desk.db
    order = sell(desk, fixed_now)
    db.add_vendor(Vendor(id="V-1", name="Bengal Pulp Co"))
    db.add_request(VendorRequest(id="REQ-1", vendor_id="V-1", vendor_name="Bengal Pulp Co",
                                 product_id="P-A", product_name="Facial Tissue 100 pulls",
                                 quantity=50, expected_date="2026-04-01"))
    path = tmp_path / "backup.json"
    backup_state(db, str(path))

    state = json.loads(path.read_text())
    assert "customerAddress" not in state["orders"][0]

    target = Database(":memory:")
    try:
        counts = restore_state(target, str(path))
        assert counts == {"products": 3, "vendors": 1, "requests": 1, "orders": 1}
        assert target.get_order(order.id) == order
        assert target.get_product("P-A").stock_quantity == 2
        assert target.get_request("REQ-1").quantity == 50
    finally:
        target.close()


def test_restore_replaces_existing_state(catalog, tmp_path) -> None:
    path = tmp_path / "backup.json"
    path.write_text(json.dumps({"products": [], "orders": []}))
    restore_state(catalog, str(path))
    assert catalog.list_products() == []
