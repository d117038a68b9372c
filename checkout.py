# checkout.py
import logging
from collections import OrderedDict
from datetime import datetime

from errors import NotFoundError, Shortage, StockError, ValidationError
from models import CartLine, CartSession, Order, OrderItem, check_discount, clean_text, money, new_id
from pricing import price_cart

logger = logging.getLogger("craftline.checkout")


def generate_invoice_number(now: datetime, order_log=None) -> str:
    """
    'INV-' plus the last six digits of the millisecond timestamp.
    Steps forward a millisecond at a time if the log already holds that number.
    """
    stamp = round(now.timestamp() * 1000)
    number = f"INV-{stamp % 1_000_000:06d}"
    while order_log is not None and order_log.invoice_number_exists(number):
        stamp += 1
        number = f"INV-{stamp % 1_000_000:06d}"
    return number


def check_stock(priced_lines, catalog):
    """Return a Shortage for every product whose combined quantity exceeds stock."""
    requested = OrderedDict()
    for line in priced_lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
    shortages = []
    for product_id, quantity in requested.items():
        product = catalog.get_product(product_id)
        available = product.stock_quantity if product else 0
        if quantity > available:
            name = product.name if product else product_id
            shortages.append(Shortage(product_id, name, quantity, available))
    return shortages


def commit_order(cart: CartSession, catalog, order_log=None, now: datetime = None) -> Order:
    """
    Freeze the cart into an Order, take the sold quantities out of stock and
    append the order to the log, all in one transaction; then clear the cart.

    Raises ValidationError or StockError before touching anything, so a
    rejected commit leaves the catalog, the log and the cart as they were.
    """
    order_log = order_log or catalog
    cart.validate()
    customer_name = clean_text(cart.customer_name)
    if not customer_name:
        raise ValidationError("Customer name is required.")
    if cart.is_empty:
        raise ValidationError("Cart has no items with a quantity.")

    # Re-read prices and stock now; earlier checks may be stale
    priced = price_cart(cart, catalog)
    if not priced.lines:
        raise ValidationError("None of the cart's products are in the catalog any more.")
    shortages = check_stock(priced.lines, catalog)
    if shortages:
        error = StockError(shortages)
        logger.warning(f"Commit rejected: {error}")
        raise error

    now = now or datetime.now()
    totals = priced.rounded()
    order = Order(
        id=new_id("ORD"),
        invoice_number=generate_invoice_number(now, order_log),
        date=now,
        customer_id=new_id("CUS"),
        customer_name=customer_name,
        customer_phone=clean_text(cart.customer_phone),
        customer_address=clean_text(cart.customer_address),
        customer_gstin=clean_text(cart.customer_gstin),
        items=tuple(OrderItem(
            product_id=line.product_id,
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            gst_percentage=line.gst_percentage,
            subtotal=money(line.subtotal),
            total_with_gst=money(line.total),
        ) for line in priced.lines),
        total_amount=totals['subtotal'],
        discount_percentage=priced.discount_percentage,
        discount_amount=totals['discount_amount'],
        total_gst=totals['total_gst'],
        grand_total=totals['grand_total'],
    )

    with catalog.transaction():
        for line in priced.lines:
            catalog.apply_stock_delta(line.product_id, -line.quantity)
        order_log.append_order(order)

    cart.clear()
    logger.info(f"Order {order.invoice_number} committed for {customer_name}: "
                f"{len(order.items)} line(s), grand total {order.grand_total}")
    return order


class SalesDesk:
    """
    Coordinates the working cart against the catalog: adding and editing
    lines, customer details, discount, pricing and checkout.
    """
    def __init__(self, db, cart: CartSession = None):
        self.db = db
        self.cart = cart or CartSession()

    def _product(self, product_id: str):
        product = self.db.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        return product

    def add_to_cart(self, product_id: str, qty: int = 1):
        """
        Add qty of a product, merging with an existing line.
        Raises if the product is unknown, out of stock, or the combined
        quantity would exceed what is on the shelf.
        """
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError("Please enter a valid quantity.")
        product = self._product(product_id)
        if product.is_out_of_stock:
            raise StockError([Shortage(product.id, product.name, qty, 0)])
        line = self.cart.find(product_id)
        new_qty = (line.quantity if line else 0) + qty
        if new_qty > product.stock_quantity:
            raise StockError([Shortage(product.id, product.name, new_qty, product.stock_quantity)])
        if line:
            line.quantity = new_qty
        else:
            line = CartLine(product_id, new_qty)
            self.cart.lines.append(line)
        logger.debug(f"Cart: {product.name} x{new_qty}")
        return line

    def add_by_sku(self, sku: str, qty: int = 1):
        product = self.db.get_product_by_sku(sku)
        if product is None:
            raise NotFoundError(f"No product with SKU {sku}.")
        return self.add_to_cart(product.id, qty)

    def update_quantity(self, product_id: str, qty: int):
        """Set a line's quantity. Zero keeps the line but leaves it out of the order."""
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
            raise ValidationError("Quantity must be zero or more.")
        line = self.cart.find(product_id)
        if line is None:
            raise NotFoundError(f"Product {product_id} is not in the cart.")
        product = self._product(product_id)
        if qty > product.stock_quantity:
            raise StockError([Shortage(product.id, product.name, qty, product.stock_quantity)])
        line.quantity = qty
        return line

    def remove_from_cart(self, product_id: str):
        self.cart.lines = [line for line in self.cart.lines if line.product_id != product_id]

    def set_customer(self, name: str, phone: str = None, address: str = None, gstin: str = None):
        self.cart.customer_name = (name or "").strip()
        self.cart.customer_phone = clean_text(phone)
        self.cart.customer_address = clean_text(address)
        gstin = clean_text(gstin)
        self.cart.customer_gstin = gstin.upper() if gstin else None

    def set_discount(self, percentage):
        self.cart.discount_percentage = check_discount(percentage)

    def clear_cart(self):
        self.cart.clear()

    def price(self):
        return price_cart(self.cart, self.db)

    def checkout(self, now: datetime = None) -> Order:
        return commit_order(self.cart, self.db, now=now)
