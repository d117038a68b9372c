# utils.py
import json
import logging
from datetime import datetime
from io import BytesIO

import pandas as pd
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from database import Database
from invoice import Document, ImageBlock, RuleBlock, TableBlock, TextBlock
from models import Order, Product, RequestStatus, Vendor, VendorRequest, new_id

logger = logging.getLogger("craftline.utils")

INVENTORY_COLUMNS = ['id', 'sku', 'name', 'category', 'unit', 'costPrice', 'sellingPrice',
                     'gstPercentage', 'stockQuantity', 'minThreshold']
STRIPE = (245, 245, 250)


def export_inventory_csv(db: Database, file_path: str):
    """Dump inventory to CSV."""
    df = pd.DataFrame([p.to_dict() for p in db.list_products()], columns=INVENTORY_COLUMNS)
    df.to_csv(file_path, index=False)
    return file_path


def import_inventory_csv(db: Database, file_path: str):
    """
    Read a CSV with the inventory export columns and upsert products by SKU.
    Rows without an id get a fresh one.
    """
    df = pd.read_csv(file_path, dtype={'sku': str, 'id': str}).fillna('')
    count = 0
    with db.transaction():
        for _, row in df.iterrows():
            existing = db.get_product_by_sku(row['sku'])
            # Blank cells fall back to the model defaults
            data = {key: value for key, value in row.to_dict().items() if value != ''}
            data['id'] = existing.id if existing else (data.get('id') or new_id("PRD"))
            data['stockQuantity'] = int(data.get('stockQuantity') or 0)
            data['minThreshold'] = int(data.get('minThreshold') or 0)
            product = Product.from_dict(data)
            if existing:
                db.update_product(product)
            else:
                db.add_product(product)
            count += 1
    logger.info(f"Imported {count} products from {file_path}")
    return count


def orders_dataframe(orders):
    """One row per order line, with the order's totals repeated on each row."""
    rows = []
    for order in orders:
        for item in order.items:
            rows.append({
                'invoiceNumber': order.invoice_number,
                'date': order.date.isoformat(),
                'customerName': order.customer_name,
                'customerGstin': order.customer_gstin or '',
                'productName': item.product_name,
                'quantity': item.quantity,
                'unitPrice': float(item.unit_price),
                'gstPercentage': float(item.gst_percentage),
                'lineTotal': float(item.total_with_gst),
                'discountPercentage': float(order.discount_percentage),
                'grandTotal': float(order.grand_total),
            })
    return pd.DataFrame(rows)


def export_orders_csv(db: Database, file_path: str, search: str = None):
    df = orders_dataframe(db.list_orders(search))
    df.to_csv(file_path, index=False)
    return file_path


def generate_sales_report(db: Database, start_date=None, end_date=None, file_path=None):
    """Daily order counts and revenue for an optional date range (YYYY-MM-DD)."""
    orders = db.list_orders()
    if not orders:
        return None, "No sales data found for the specified period."

    df = pd.DataFrame([{
        'date': order.date.date(),
        'invoiceNumber': order.invoice_number,
        'grandTotal': float(order.grand_total),
        'totalGst': float(order.total_gst),
        'discountAmount': float(order.discount_amount),
    } for order in orders])
    if start_date:
        df = df[df['date'] >= datetime.fromisoformat(start_date).date()]
    if end_date:
        df = df[df['date'] <= datetime.fromisoformat(end_date).date()]
    if df.empty:
        return None, "No sales data found for the specified period."

    daily = (df.groupby('date')
               .agg(orders=('invoiceNumber', 'count'),
                    revenue=('grandTotal', 'sum'),
                    gst=('totalGst', 'sum'),
                    discounts=('discountAmount', 'sum'))
               .reset_index()
               .sort_values('date', ascending=False))
    summary = {
        'total_sales': round(df['grandTotal'].sum(), 2),
        'average_sale': round(df['grandTotal'].mean(), 2),
        'num_transactions': len(df),
        'start_date': start_date or df['date'].min(),
        'end_date': end_date or df['date'].max(),
    }
    if file_path:
        daily.to_csv(file_path, index=False)
    return daily, summary


def generate_inventory_report(db: Database, file_path=None):
    """Inventory with stock value, plus low and out of stock lists."""
    products = db.list_products()
    if not products:
        return None, "No inventory data found."

    df = pd.DataFrame([p.to_dict() for p in products], columns=INVENTORY_COLUMNS)
    df['stockValue'] = df['costPrice'] * df['stockQuantity']
    summary = {
        'total_items': len(df),
        'total_value': round(df['stockValue'].sum(), 2),
        'low_stock_items': [p.to_dict() for p in db.get_low_stock_products()],
        'out_of_stock_items': [p.to_dict() for p in db.get_out_of_stock_products()],
    }
    summary['low_stock_count'] = len(summary['low_stock_items'])
    summary['out_of_stock_count'] = len(summary['out_of_stock_items'])
    summary['category_counts'] = {category: int(count) for category, count
                                  in df.groupby('category').size().items()}
    summary['pending_requests'] = len(db.list_requests(RequestStatus.PENDING.value))
    if file_path:
        df.to_csv(file_path, index=False)
    return df, summary


# Invoice PDF
def _rgb(color):
    return tuple(channel / 255 for channel in color)


def _draw_text(c, block: TextBlock, page_height):
    c.setFont(block.font, block.size)
    c.setFillColorRGB(*_rgb(block.color))
    y = page_height - block.y
    if block.align == "right":
        c.drawRightString(block.x, y, block.text)
    elif block.align == "center":
        c.drawCentredString(block.x, y, block.text)
    else:
        c.drawString(block.x, y, block.text)


def _draw_rule(c, block: RuleBlock, page_height):
    c.setStrokeColorRGB(*_rgb(block.color))
    c.setLineWidth(block.width)
    c.line(block.x1, page_height - block.y1, block.x2, page_height - block.y2)


def _draw_image(c, block: ImageBlock, page_height):
    c.saveState()
    if block.opacity < 1:
        c.setFillAlpha(block.opacity)
    c.drawImage(ImageReader(BytesIO(block.asset.data)), block.x,
                page_height - block.y - block.height, block.width, block.height,
                mask='auto', preserveAspectRatio=True)
    c.restoreState()


def _draw_cell(c, column, x, y, text, padding=4):
    if column.align == "right":
        c.drawRightString(x + column.width - padding, y, text)
    elif column.align == "center":
        c.drawCentredString(x + column.width / 2, y, text)
    else:
        c.drawString(x + padding, y, text)


def _draw_table(c, block: TableBlock, page_height):
    width = sum(col.width for col in block.columns)
    top = block.y
    # Header row
    c.setFillColorRGB(*_rgb(block.header_fill))
    c.rect(block.x, page_height - top - block.header_height, width, block.header_height,
           stroke=0, fill=1)
    c.setFont("Helvetica-Bold", block.font_size)
    c.setFillColorRGB(1, 1, 1)
    x = block.x
    for col in block.columns:
        _draw_cell(c, col, x, page_height - (top + block.header_height - 7), col.title)
        x += col.width

    y = top + block.header_height
    for index, (row, height) in enumerate(zip(block.rows, block.row_heights)):
        if index % 2:
            c.setFillColorRGB(*_rgb(STRIPE))
            c.rect(block.x, page_height - y - height, width, height, stroke=0, fill=1)
        c.setFont("Helvetica", block.font_size)
        c.setFillColorRGB(0, 0, 0)
        x = block.x
        for col, cell in zip(block.columns, row):
            for n, line in enumerate(cell.split("\n")):
                _draw_cell(c, col, x, page_height - (y + 4 + block.font_size + n * 11), line)
            x += col.width
        y += height
    c.setStrokeColorRGB(0.8, 0.8, 0.8)
    c.setLineWidth(0.5)
    c.line(block.x, page_height - y, block.x + width, page_height - y)


DRAWERS = {
    TextBlock: _draw_text,
    RuleBlock: _draw_rule,
    ImageBlock: _draw_image,
    TableBlock: _draw_table,
}


def write_invoice_pdf(document: Document, file_path: str, title: str = "Invoice"):
    """Draw a laid-out invoice Document to a PDF file using ReportLab."""
    c = canvas.Canvas(file_path, pagesize=(document.width, document.height))
    c.setTitle(title)
    for number in range(document.page_count):
        for block in document.page(number):
            DRAWERS[type(block)](c, block, document.height)
        c.showPage()
    c.save()
    logger.info(f"Invoice PDF written to {file_path}")
    return file_path


# Whole-state backup
def backup_state(db: Database, file_path: str):
    """Write products, vendors, requests and orders as one JSON document."""
    state = {
        'products': [p.to_dict() for p in db.list_products()],
        'vendors': [v.to_dict() for v in db.list_vendors()],
        'requests': [r.to_dict() for r in db.list_requests()],
        'orders': [o.to_dict() for o in db.list_orders()],
    }
    with open(file_path, 'w') as f:
        json.dump(state, f, indent=2)
    logger.info(f"Backup written to {file_path}")
    return file_path


def restore_state(db: Database, file_path: str):
    """Replace everything in the database with a backup. All or nothing."""
    with open(file_path, 'r') as f:
        state = json.load(f)
    with db.transaction():
        db.clear_all()
        for data in state.get('products', []):
            db.add_product(Product.from_dict(data))
        for data in state.get('vendors', []):
            db.add_vendor(Vendor.from_dict(data))
        for data in state.get('requests', []):
            db.add_request(VendorRequest.from_dict(data))
        # Oldest first so the log keeps its append order
        for data in reversed(state.get('orders', [])):
            db.append_order(Order.from_dict(data))
    counts = {key: len(state.get(key, [])) for key in ('products', 'vendors', 'requests', 'orders')}
    logger.info(f"Restored backup from {file_path}: {counts}")
    return counts
