# main.py
import os
import sys
import copy
import logging
import argparse
import json
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from checkout import SalesDesk
from database import Database
from errors import NotFoundError, SalesError
from invoice import IssuerInfo, load_assets, render_invoice
from logger import configure_logger
from models import Product, Vendor, VendorRequest, money, new_id
from utils import (backup_state, export_inventory_csv, export_orders_csv,
                   generate_inventory_report, generate_sales_report, import_inventory_csv,
                   restore_state, write_invoice_pdf)

logger = logging.getLogger("craftline.main")

# Default configuration
DEFAULT_CONFIG = {
    "database": {
        "name": "craftline.db",
        "backup_dir": "backups"
    },
    "logging": {
        "level": "INFO",
        "file": "logs/craftline.log",
        "max_size": 1048576,
        "backup_count": 3
    },
    "invoice": {
        "output_dir": "invoices",
        "asset_timeout": 5.0,
        "assets": {
            "logo": "",
            "watermark": "",
            "qr": ""
        },
        "issuer": {
            "name": "CRAFTLINE PRODUCTION",
            "tagline": "Manufacturer of Fresh Fold Tissue",
            "contact": ["Contact: 9477110150", "Email: craftlineproduction25@gmail.com"]
        }
    },
    "export": {
        "default_dir": "exports"
    }
}


def merge_config(defaults: dict, overrides: dict):
    """Overlay user settings on the defaults, section by section."""
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path="config.json"):
    """Load configuration from JSON file or create default if not exists"""
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return merge_config(DEFAULT_CONFIG, config)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config, using defaults: {e}")
            return copy.deepcopy(DEFAULT_CONFIG)

    # Create default config if not exists
    with open(config_path, 'w') as f:
        json.dump(DEFAULT_CONFIG, f, indent=4)
    logger.info(f"Created default configuration at {config_path}")

    return copy.deepcopy(DEFAULT_CONFIG)


def setup_directories(config):
    """Create required directories if they don't exist."""
    dir_mappings = {
        'invoice_dir': config['invoice']['output_dir'],
        'export_dir': config['export']['default_dir'],
        'backup_dir': config['database']['backup_dir'],
        'log_dir': os.path.dirname(config['logging']['file'] or '')
    }

    for dir_key, dir_path in dir_mappings.items():
        if not dir_path:
            continue
        path = Path(dir_path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {path}")
        else:
            logger.debug(f"Directory already exists: {path}")


def parse_item(value: str):
    """'SKU:QTY' -> (sku, qty); a bare SKU means one unit."""
    sku, _, qty = value.rpartition(":") if ":" in value else (value, "", "1")
    try:
        return sku.strip(), int(qty)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid item {value!r}; expected SKU:QTY")


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Craftline inventory, sales orders and invoices")
    parser.add_argument("--config", help="Path to configuration file", default="config.json")
    parser.add_argument("--debug", help="Enable debug mode", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("products", help="List products")
    p.add_argument("--search", default="")
    p.add_argument("--category")

    p = sub.add_parser("add-product", help="Add a product to the catalog")
    p.add_argument("--sku", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--category", default="Other")
    p.add_argument("--unit", default="packs")
    p.add_argument("--cost", default="0")
    p.add_argument("--price", required=True)
    p.add_argument("--gst", default="0")
    p.add_argument("--stock", type=int, default=0)
    p.add_argument("--min", type=int, default=0, dest="min_threshold")

    p = sub.add_parser("edit-product", help="Change fields of an existing product")
    p.add_argument("sku")
    p.add_argument("--new-sku")
    p.add_argument("--name")
    p.add_argument("--category")
    p.add_argument("--unit")
    p.add_argument("--cost")
    p.add_argument("--price")
    p.add_argument("--gst")
    p.add_argument("--stock", type=int)
    p.add_argument("--min", type=int, dest="min_threshold")

    p = sub.add_parser("delete-product", help="Remove a product from the catalog")
    p.add_argument("sku")

    p = sub.add_parser("stock", help="Adjust stock by a signed quantity")
    p.add_argument("sku")
    p.add_argument("delta", type=int)

    sub.add_parser("low-stock", help="Show low and out of stock products")
    sub.add_parser("dashboard", help="Inventory, stock alert and request counts")

    p = sub.add_parser("sell", help="Create a sales order and its invoice")
    p.add_argument("--customer", required=True)
    p.add_argument("--phone")
    p.add_argument("--address")
    p.add_argument("--gstin")
    p.add_argument("--item", action="append", type=parse_item, required=True,
                   help="SKU:QTY, repeatable")
    p.add_argument("--discount", default="0")
    p.add_argument("--no-pdf", action="store_true")

    p = sub.add_parser("orders", help="List orders, newest first")
    p.add_argument("--search")

    p = sub.add_parser("invoice", help="Render the PDF invoice for an order")
    p.add_argument("invoice_number")
    p.add_argument("--output")

    sub.add_parser("vendors", help="List vendors")
    p = sub.add_parser("add-vendor", help="Add a vendor")
    p.add_argument("--name", required=True)
    p.add_argument("--gstin", default="")
    p.add_argument("--contact", default="")
    p.add_argument("--address", default="")

    p = sub.add_parser("delete-vendor", help="Remove a vendor")
    p.add_argument("vendor_id")

    p = sub.add_parser("request", help="Raise a supply request with a vendor")
    p.add_argument("--vendor", required=True, help="Vendor id")
    p.add_argument("--sku", required=True)
    p.add_argument("--qty", type=int, required=True)
    p.add_argument("--expected", required=True, help="Expected date, YYYY-MM-DD")

    p = sub.add_parser("requests", help="List vendor requests")
    p.add_argument("--status")

    p = sub.add_parser("request-status", help="Move a vendor request to a new status")
    p.add_argument("request_id")
    p.add_argument("status")

    p = sub.add_parser("export", help="Export inventory or orders to CSV")
    p.add_argument("what", choices=["inventory", "orders"])
    p.add_argument("--output")

    p = sub.add_parser("import-inventory", help="Upsert products from a CSV file")
    p.add_argument("path")

    p = sub.add_parser("sales-report", help="Daily sales summary")
    p.add_argument("--from", dest="date_from")
    p.add_argument("--to", dest="date_to")
    p.add_argument("--output")

    p = sub.add_parser("backup", help="Write the whole state to a JSON file")
    p.add_argument("--output")
    p = sub.add_parser("restore", help="Replace the whole state from a JSON backup")
    p.add_argument("path")

    return parser.parse_args(argv)


def write_invoice(order, config, output=None):
    """Fetch the configured images, lay out the invoice and save it as PDF."""
    invoice_cfg = config["invoice"]
    assets = load_assets(invoice_cfg.get("assets", {}), timeout=invoice_cfg.get("asset_timeout", 5.0))
    document = render_invoice(order, assets, IssuerInfo.from_config(config))
    path = output or os.path.join(invoice_cfg["output_dir"], f"{order.invoice_number}.pdf")
    return write_invoice_pdf(document, path, title=order.invoice_number)


def _timestamped(directory, prefix, ext):
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return os.path.join(directory, f"{prefix}_{stamp}.{ext}")


def _product_by_sku(db: Database, sku: str):
    product = db.get_product_by_sku(sku)
    if product is None:
        raise NotFoundError(f"No product with SKU {sku}.")
    return product


def run_command(args, db: Database, config):
    """Dispatch one CLI command. Domain errors propagate to the caller."""
    cmd = args.command

    if cmd == "products":
        for p in db.search_products(args.search, args.category):
            flag = " (LOW)" if p.is_low_stock else " (OUT)" if p.is_out_of_stock else ""
            print(f"{p.sku:12} {p.name[:30]:30} {p.category.value:15} "
                  f"{money(p.selling_price):>10} {p.stock_quantity:>6} {p.unit.value}{flag}")

    elif cmd == "add-product":
        product = db.add_product(Product(
            id=new_id("PRD"), sku=args.sku, name=args.name, category=args.category,
            unit=args.unit, cost_price=args.cost, selling_price=args.price,
            gst_percentage=args.gst, stock_quantity=args.stock,
            min_threshold=args.min_threshold))
        print(f"Added {product.name} ({product.id})")

    elif cmd == "edit-product":
        product = _product_by_sku(db, args.sku)
        fields = {
            'sku': args.new_sku, 'name': args.name, 'category': args.category,
            'unit': args.unit, 'cost_price': args.cost, 'selling_price': args.price,
            'gst_percentage': args.gst, 'stock_quantity': args.stock,
            'min_threshold': args.min_threshold,
        }
        changes = {key: value for key, value in fields.items() if value is not None}
        if not changes:
            print("Nothing to change.")
            return
        updated = replace(product, **changes)
        db.update_product(updated)
        logger.info(f"Product {updated.sku} updated: {', '.join(changes)}")
        print(f"Updated {updated.name} ({updated.sku})")

    elif cmd == "delete-product":
        product = _product_by_sku(db, args.sku)
        db.delete_product(product.id)
        logger.info(f"Product {product.sku} deleted")
        print(f"Deleted {product.name} ({product.sku})")

    elif cmd == "stock":
        product = _product_by_sku(db, args.sku)
        db.apply_stock_delta(product.id, args.delta)
        print(f"{product.name}: stock now {db.get_product(product.id).stock_quantity}")

    elif cmd == "low-stock":
        _, summary = generate_inventory_report(db)
        if isinstance(summary, str):
            print(summary)
            return
        for p in summary['low_stock_items']:
            print(f"LOW  {p['sku']:12} {p['name']:30} {p['stockQuantity']:>6} (min {p['minThreshold']})")
        for p in summary['out_of_stock_items']:
            print(f"OUT  {p['sku']:12} {p['name']:30}")

    elif cmd == "dashboard":
        _, summary = generate_inventory_report(db)
        if isinstance(summary, str):
            print(summary)
            return
        print(f"Total products:   {summary['total_items']}")
        print(f"Inventory value:  {summary['total_value']:.2f}")
        print(f"Low stock items:  {summary['low_stock_count']}")
        print(f"Out of stock:     {summary['out_of_stock_count']}")
        print(f"Pending requests: {summary['pending_requests']}")
        for category, count in summary['category_counts'].items():
            print(f"  {category:15} {count:>4}")

    elif cmd == "sell":
        desk = SalesDesk(db)
        desk.set_customer(args.customer, args.phone, args.address, args.gstin)
        desk.set_discount(args.discount)
        for sku, qty in args.item:
            desk.add_by_sku(sku, qty)
        totals = desk.price().rounded()
        order = desk.checkout()
        print(f"Order {order.invoice_number}: subtotal {totals['subtotal']}, "
              f"discount {totals['discount_amount']}, GST {totals['total_gst']}, "
              f"grand total {totals['grand_total']}")
        if not args.no_pdf:
            print(f"Invoice saved to {write_invoice(order, config)}")

    elif cmd == "orders":
        for order in db.list_orders(args.search):
            print(f"{order.invoice_number:12} {order.date:%Y-%m-%d} {order.customer_name[:30]:30} "
                  f"{len(order.items):>3} item(s) {order.grand_total:>12}")

    elif cmd == "invoice":
        order = db.get_order_by_invoice(args.invoice_number)
        if order is None:
            raise NotFoundError(f"Invoice {args.invoice_number} not found.")
        print(f"Invoice saved to {write_invoice(order, config, args.output)}")

    elif cmd == "vendors":
        for v in db.list_vendors():
            print(f"{v.id:16} {v.name[:30]:30} {v.gstin:16} {v.contact}")

    elif cmd == "add-vendor":
        vendor = db.add_vendor(Vendor(id=new_id("VEN"), name=args.name, gstin=args.gstin,
                                      contact=args.contact, address=args.address))
        print(f"Added vendor {vendor.name} ({vendor.id})")

    elif cmd == "delete-vendor":
        if not db.delete_vendor(args.vendor_id):
            raise NotFoundError(f"Vendor {args.vendor_id} not found.")
        print(f"Deleted vendor {args.vendor_id}")

    elif cmd == "request":
        vendor = db.get_vendor(args.vendor)
        product = db.get_product_by_sku(args.sku)
        if vendor is None or product is None:
            raise NotFoundError("Unknown vendor or product.")
        request = db.add_request(VendorRequest(
            id=new_id("REQ"), vendor_id=vendor.id, vendor_name=vendor.name,
            product_id=product.id, product_name=product.name, quantity=args.qty,
            expected_date=args.expected, created_at=datetime.now().isoformat()))
        print(f"Request {request.id} raised ({request.status.value})")

    elif cmd == "requests":
        for r in db.list_requests(args.status):
            print(f"{r.id:16} {r.vendor_name[:20]:20} {r.product_name[:25]:25} "
                  f"{r.quantity:>6} {r.expected_date:12} {r.status.value}")

    elif cmd == "request-status":
        updated = db.update_request_status(args.request_id, args.status)
        print(f"Request {updated.id} is now {updated.status.value}")

    elif cmd == "export":
        out_dir = config["export"]["default_dir"]
        if args.what == "inventory":
            path = export_inventory_csv(db, args.output or _timestamped(out_dir, "inventory", "csv"))
        else:
            path = export_orders_csv(db, args.output or _timestamped(out_dir, "orders", "csv"))
        print(f"Exported to {path}")

    elif cmd == "import-inventory":
        print(f"{import_inventory_csv(db, args.path)} products imported.")

    elif cmd == "sales-report":
        daily, summary = generate_sales_report(db, args.date_from, args.date_to, args.output)
        if daily is None:
            print(summary)
            return
        print(daily.to_string(index=False))
        print(f"Total sales: {summary['total_sales']:.2f} over {summary['num_transactions']} order(s)")

    elif cmd == "backup":
        path = args.output or _timestamped(config["database"]["backup_dir"], "backup", "json")
        print(f"Backup written to {backup_state(db, path)}")

    elif cmd == "restore":
        counts = restore_state(db, args.path)
        print(", ".join(f"{n} {key}" for key, n in counts.items()) + " restored.")


def main(argv=None):
    db = None
    try:
        # Parse command line arguments
        args = parse_arguments(argv)

        # Load configuration and logging
        config = load_config(args.config)
        configure_logger(config)
        if args.debug:
            logging.getLogger("craftline").setLevel(logging.DEBUG)
            logger.debug("Debug mode enabled")

        # Setup required directories
        setup_directories(config)

        # Initialize database
        db_path = config["database"].get("name", "craftline.db")
        db = Database(db_path)
        logger.info(f"Database initialized: {db_path}")

        run_command(args, db, config)
        return 0

    except SalesError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    sys.exit(main())
