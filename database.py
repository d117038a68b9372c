# database.py
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime

from errors import NotFoundError, Shortage, StockError, ValidationError
from models import Order, OrderItem, Product, RequestStatus, Vendor, VendorRequest, parse_choice

logger = logging.getLogger("craftline.database")


class Database:
    """
    Manages the SQLite connection. Acts as the catalog store, the order log,
    the vendor directory and the vendor request book.
    """
    def __init__(self, db_name: str = "craftline.db"):
        self.conn = sqlite3.connect(db_name)
        self.conn.row_factory = sqlite3.Row
        self._in_transaction = False
        self._create_tables()

    def _create_tables(self):
        cur = self.conn.cursor()
        # Products table; money kept as decimal text
        cur.execute("""
        CREATE TABLE IF NOT EXISTS products (
            id TEXT PRIMARY KEY,
            sku TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            category TEXT NOT NULL,
            unit TEXT NOT NULL,
            cost_price TEXT NOT NULL,
            selling_price TEXT NOT NULL,
            gst_percentage TEXT NOT NULL,
            stock_quantity INTEGER NOT NULL CHECK (stock_quantity >= 0),
            min_threshold INTEGER NOT NULL DEFAULT 0
        )
        """)
        # Orders master table
        cur.execute("""
        CREATE TABLE IF NOT EXISTS orders (
            id TEXT PRIMARY KEY,
            invoice_number TEXT UNIQUE NOT NULL,
            date TEXT NOT NULL,
            customer_id TEXT,
            customer_name TEXT NOT NULL,
            customer_phone TEXT,
            customer_address TEXT,
            customer_gstin TEXT,
            total_amount TEXT NOT NULL,
            discount_percentage TEXT NOT NULL,
            discount_amount TEXT NOT NULL,
            total_gst TEXT NOT NULL,
            grand_total TEXT NOT NULL
        )
        """)
        # Order lines are snapshots: no foreign key to products
        cur.execute("""
        CREATE TABLE IF NOT EXISTS order_items (
            order_id TEXT NOT NULL,
            position INTEGER NOT NULL,
            product_id TEXT NOT NULL,
            product_name TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            unit_price TEXT NOT NULL,
            gst_percentage TEXT NOT NULL,
            subtotal TEXT NOT NULL,
            total_with_gst TEXT NOT NULL,
            PRIMARY KEY (order_id, position),
            FOREIGN KEY(order_id) REFERENCES orders(id)
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS vendors (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            gstin TEXT,
            contact TEXT,
            address TEXT
        )
        """)
        cur.execute("""
        CREATE TABLE IF NOT EXISTS vendor_requests (
            id TEXT PRIMARY KEY,
            vendor_id TEXT NOT NULL,
            vendor_name TEXT NOT NULL,
            product_id TEXT NOT NULL,
            product_name TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            expected_date TEXT,
            status TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """)
        self.conn.commit()

    @contextmanager
    def transaction(self):
        """
        Group several writes into one unit: they all commit together, or the
        first exception rolls every one of them back.
        """
        if self._in_transaction:
            yield self
            return
        self._in_transaction = True
        try:
            with self.conn:
                yield self
        finally:
            self._in_transaction = False

    def _commit(self):
        if not self._in_transaction:
            self.conn.commit()

    def close(self):
        self.conn.close()

    # Product operations
    def add_product(self, product: Product):
        """Insert a new product; SKU must be unique."""
        cur = self.conn.cursor()
        try:
            cur.execute("""
            INSERT INTO products (id, sku, name, category, unit, cost_price,
                                  selling_price, gst_percentage, stock_quantity, min_threshold)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, self._product_params(product))
        except sqlite3.IntegrityError:
            raise ValidationError(f"A product with SKU {product.sku} already exists.")
        self._commit()
        return product

    @staticmethod
    def _product_params(product: Product):
        return (product.id, product.sku, product.name, product.category.value,
                product.unit.value, str(product.cost_price), str(product.selling_price),
                str(product.gst_percentage), product.stock_quantity, product.min_threshold)

    def get_product(self, product_id: str):
        """Fetch a product by ID, or None."""
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM products WHERE id = ?", (product_id,))
        row = cur.fetchone()
        return Product.from_row(row) if row else None

    def get_product_by_sku(self, sku: str):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM products WHERE sku = ?", (sku,))
        row = cur.fetchone()
        return Product.from_row(row) if row else None

    def list_products(self):
        """Return all products ordered by name."""
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM products ORDER BY name")
        return [Product.from_row(row) for row in cur.fetchall()]

    def search_products(self, keyword: str = "", category: str = None):
        """Search products by name or SKU, optionally within one category."""
        cur = self.conn.cursor()
        kw = f"%{keyword}%"
        q = "SELECT * FROM products WHERE (name LIKE ? OR sku LIKE ?)"
        params = [kw, kw]
        if category:
            q += " AND category = ?"
            params.append(category)
        cur.execute(q + " ORDER BY name", params)
        return [Product.from_row(row) for row in cur.fetchall()]

    def update_product(self, product: Product):
        """Replace every editable field of an existing product."""
        cur = self.conn.cursor()
        params = self._product_params(product)
        try:
            cur.execute("""
            UPDATE products
            SET sku = ?, name = ?, category = ?, unit = ?, cost_price = ?,
                selling_price = ?, gst_percentage = ?, stock_quantity = ?, min_threshold = ?
            WHERE id = ?
            """, params[1:] + params[:1])
        except sqlite3.IntegrityError:
            raise ValidationError(f"A product with SKU {product.sku} already exists.")
        if cur.rowcount == 0:
            raise NotFoundError(f"Product {product.id} not found.")
        self._commit()

    def delete_product(self, product_id: str):
        """Delete a product. Past order lines keep their own snapshot."""
        cur = self.conn.cursor()
        cur.execute("DELETE FROM products WHERE id = ?", (product_id,))
        self._commit()
        return cur.rowcount > 0

    def apply_stock_delta(self, product_id: str, delta: int):
        """
        Change stock by delta (negative for a sale).
        Raises NotFoundError for an unknown product and StockError when the
        change would take stock below zero.
        """
        cur = self.conn.cursor()
        cur.execute("""
        UPDATE products
        SET stock_quantity = stock_quantity + ?
        WHERE id = ? AND stock_quantity + ? >= 0
        """, (delta, product_id, delta))
        if cur.rowcount == 0:
            product = self.get_product(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found.")
            raise StockError([Shortage(product.id, product.name, -delta, product.stock_quantity)])
        self._commit()

    def get_low_stock_products(self):
        """Products at or under their alert threshold but not yet empty."""
        cur = self.conn.cursor()
        cur.execute("""
        SELECT * FROM products
        WHERE stock_quantity > 0 AND stock_quantity <= min_threshold
        ORDER BY stock_quantity ASC
        """)
        return [Product.from_row(row) for row in cur.fetchall()]

    def get_out_of_stock_products(self):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM products WHERE stock_quantity = 0 ORDER BY name")
        return [Product.from_row(row) for row in cur.fetchall()]

    # Order operations
    def append_order(self, order: Order):
        """Record an order and its line snapshots. Orders are never updated."""
        cur = self.conn.cursor()
        cur.execute("""
        INSERT INTO orders (id, invoice_number, date, customer_id, customer_name,
                            customer_phone, customer_address, customer_gstin,
                            total_amount, discount_percentage, discount_amount,
                            total_gst, grand_total)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (order.id, order.invoice_number, order.date.isoformat(), order.customer_id,
              order.customer_name, order.customer_phone, order.customer_address,
              order.customer_gstin, str(order.total_amount), str(order.discount_percentage),
              str(order.discount_amount), str(order.total_gst), str(order.grand_total)))
        for position, item in enumerate(order.items):
            cur.execute("""
            INSERT INTO order_items (order_id, position, product_id, product_name, quantity,
                                     unit_price, gst_percentage, subtotal, total_with_gst)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (order.id, position, item.product_id, item.product_name, item.quantity,
                  str(item.unit_price), str(item.gst_percentage), str(item.subtotal),
                  str(item.total_with_gst)))
        self._commit()

    def _load_order(self, row):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM order_items WHERE order_id = ? ORDER BY position", (row['id'],))
        items = [{
            'productId': it['product_id'],
            'productName': it['product_name'],
            'quantity': it['quantity'],
            'unitPrice': it['unit_price'],
            'gstPercentage': it['gst_percentage'],
            'subtotal': it['subtotal'],
            'totalWithGst': it['total_with_gst'],
        } for it in cur.fetchall()]
        return Order.from_dict({
            'id': row['id'],
            'invoiceNumber': row['invoice_number'],
            'date': row['date'],
            'customerId': row['customer_id'],
            'customerName': row['customer_name'],
            'customerPhone': row['customer_phone'],
            'customerAddress': row['customer_address'],
            'customerGstin': row['customer_gstin'],
            'items': items,
            'totalAmount': row['total_amount'],
            'discountPercentage': row['discount_percentage'],
            'discountAmount': row['discount_amount'],
            'totalGst': row['total_gst'],
            'grandTotal': row['grand_total'],
        })

    def get_order(self, order_id: str):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
        row = cur.fetchone()
        return self._load_order(row) if row else None

    def get_order_by_invoice(self, invoice_number: str):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM orders WHERE invoice_number = ?", (invoice_number,))
        row = cur.fetchone()
        return self._load_order(row) if row else None

    def invoice_number_exists(self, invoice_number: str):
        cur = self.conn.cursor()
        cur.execute("SELECT 1 FROM orders WHERE invoice_number = ?", (invoice_number,))
        return cur.fetchone() is not None

    def list_orders(self, search: str = None):
        """List orders newest first, optionally matching customer or invoice number."""
        cur = self.conn.cursor()
        q = "SELECT * FROM orders"
        params = []
        if search:
            kw = f"%{search.lower()}%"
            q += " WHERE lower(customer_name) LIKE ? OR lower(invoice_number) LIKE ?"
            params = [kw, kw]
        q += " ORDER BY date DESC"
        cur.execute(q, params)
        return [self._load_order(row) for row in cur.fetchall()]

    # Vendor operations
    def add_vendor(self, vendor: Vendor):
        cur = self.conn.cursor()
        cur.execute("""
        INSERT INTO vendors (id, name, gstin, contact, address)
        VALUES (?, ?, ?, ?, ?)
        """, (vendor.id, vendor.name, vendor.gstin, vendor.contact, vendor.address))
        self._commit()
        return vendor

    def get_vendor(self, vendor_id: str):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM vendors WHERE id = ?", (vendor_id,))
        row = cur.fetchone()
        return Vendor(**dict(row)) if row else None

    def list_vendors(self):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM vendors ORDER BY name")
        return [Vendor(**dict(row)) for row in cur.fetchall()]

    def delete_vendor(self, vendor_id: str):
        cur = self.conn.cursor()
        cur.execute("DELETE FROM vendors WHERE id = ?", (vendor_id,))
        self._commit()
        return cur.rowcount > 0

    # Vendor request operations
    def add_request(self, request: VendorRequest):
        cur = self.conn.cursor()
        cur.execute("""
        INSERT INTO vendor_requests (id, vendor_id, vendor_name, product_id, product_name,
                                     quantity, expected_date, status, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (request.id, request.vendor_id, request.vendor_name, request.product_id,
              request.product_name, request.quantity, request.expected_date,
              request.status.value, request.created_at or datetime.now().isoformat()))
        self._commit()
        return self.get_request(request.id)

    def get_request(self, request_id: str):
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM vendor_requests WHERE id = ?", (request_id,))
        row = cur.fetchone()
        return VendorRequest(**dict(row)) if row else None

    def list_requests(self, status: str = None):
        """List vendor requests newest first, optionally filtered by status."""
        cur = self.conn.cursor()
        q = "SELECT * FROM vendor_requests"
        params = []
        if status:
            q += " WHERE status = ?"
            params = [parse_choice(RequestStatus, status, "status").value]
        cur.execute(q + " ORDER BY created_at DESC", params)
        return [VendorRequest(**dict(row)) for row in cur.fetchall()]

    def update_request_status(self, request_id: str, status):
        """Move a request along its status machine."""
        request = self.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found.")
        updated = request.transition(status)
        cur = self.conn.cursor()
        cur.execute("UPDATE vendor_requests SET status = ? WHERE id = ?",
                    (updated.status.value, request_id))
        self._commit()
        logger.info(f"Request {request_id}: {request.status.value} -> {updated.status.value}")
        return updated

    def clear_all(self):
        """Empty every table; used before restoring a backup."""
        cur = self.conn.cursor()
        for table in ("order_items", "orders", "vendor_requests", "vendors", "products"):
            cur.execute(f"DELETE FROM {table}")
        self._commit()
