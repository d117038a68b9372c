# models.py
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Tuple

from errors import ValidationError

CENT = Decimal("0.01")


class Category(str, Enum):
    FACIAL_TISSUE = "Facial Tissue"
    TOILET_ROLL = "Toilet Roll"
    NAPKINS = "Napkins"
    JUMBO_ROLLS = "Jumbo Rolls"
    KITCHEN_TOWELS = "Kitchen Towels"
    OTHER = "Other"


class Unit(str, Enum):
    PACKS = "packs"
    CARTONS = "cartons"
    ROLLS = "rolls"
    KG = "kg"


class RequestStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    DELIVERED = "Delivered"


# Allowed vendor request transitions
REQUEST_TRANSITIONS = {
    RequestStatus.PENDING: {RequestStatus.APPROVED, RequestStatus.REJECTED},
    RequestStatus.APPROVED: {RequestStatus.DELIVERED},
    RequestStatus.REJECTED: set(),
    RequestStatus.DELIVERED: set(),
}


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10].upper()}"


def to_decimal(value, field_name: str = "value") -> Decimal:
    """Coerce ints, floats and numeric strings to Decimal without float noise."""
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be a finite number, got {value!r}")
    return number


def money(value) -> Decimal:
    """Round to paise for display and for freezing onto an order."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def clean_text(value) -> Optional[str]:
    """Blank or whitespace-only optional text becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_choice(enum_cls, value, field_name):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field_name} must be one of: {allowed}.")


def _non_negative(value, field_name):
    number = to_decimal(value, field_name)
    if number < 0:
        raise ValidationError(f"{field_name} cannot be negative.")
    return number


def _non_negative_int(value, field_name):
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"{field_name} must be a whole number.")
    number = to_decimal(value, field_name)
    if number != number.to_integral_value():
        raise ValidationError(f"{field_name} must be a whole number.")
    if number < 0:
        raise ValidationError(f"{field_name} cannot be negative.")
    return int(number)


def check_discount(value) -> Decimal:
    pct = to_decimal(value, "discount")
    if pct < 0 or pct > 100:
        raise ValidationError("Discount must be between 0 and 100 percent.")
    return pct


@dataclass
class Product:
    """A catalog entry. Prices are Decimal, stock is a whole count."""
    id: str
    sku: str
    name: str
    category: Category = Category.OTHER
    unit: Unit = Unit.PACKS
    cost_price: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    gst_percentage: Decimal = Decimal("0")
    stock_quantity: int = 0
    min_threshold: int = 0

    def __post_init__(self):
        if not clean_text(self.sku):
            raise ValidationError("Product SKU is required.")
        if not clean_text(self.name):
            raise ValidationError("Product name is required.")
        self.category = parse_choice(Category, self.category, "category")
        self.unit = parse_choice(Unit, self.unit, "unit")
        self.cost_price = _non_negative(self.cost_price, "cost_price")
        self.selling_price = _non_negative(self.selling_price, "selling_price")
        self.gst_percentage = _non_negative(self.gst_percentage, "gst_percentage")
        self.stock_quantity = _non_negative_int(self.stock_quantity, "stock_quantity")
        self.min_threshold = _non_negative_int(self.min_threshold, "min_threshold")

    @property
    def is_out_of_stock(self):
        return self.stock_quantity == 0

    @property
    def is_low_stock(self):
        return 0 < self.stock_quantity <= self.min_threshold

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            sku=row['sku'],
            name=row['name'],
            category=row['category'],
            unit=row['unit'],
            cost_price=row['cost_price'],
            selling_price=row['selling_price'],
            gst_percentage=row['gst_percentage'],
            stock_quantity=row['stock_quantity'],
            min_threshold=row['min_threshold'],
        )

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'category': self.category.value,
            'unit': self.unit.value,
            'costPrice': float(self.cost_price),
            'sellingPrice': float(self.selling_price),
            'gstPercentage': float(self.gst_percentage),
            'stockQuantity': self.stock_quantity,
            'minThreshold': self.min_threshold,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            id=data['id'],
            sku=data['sku'],
            name=data['name'],
            category=data.get('category', Category.OTHER),
            unit=data.get('unit', Unit.PACKS),
            cost_price=data.get('costPrice', 0),
            selling_price=data.get('sellingPrice', 0),
            gst_percentage=data.get('gstPercentage', 0),
            stock_quantity=data.get('stockQuantity', 0),
            min_threshold=data.get('minThreshold', 0),
        )


@dataclass
class Vendor:
    id: str
    name: str
    gstin: str = ""
    contact: str = ""
    address: str = ""

    def __post_init__(self):
        if not clean_text(self.name):
            raise ValidationError("Vendor name is required.")

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'gstin': self.gstin,
                'contact': self.contact, 'address': self.address}

    @classmethod
    def from_dict(cls, data: dict):
        return cls(id=data['id'], name=data['name'], gstin=data.get('gstin', ''),
                   contact=data.get('contact', ''), address=data.get('address', ''))


@dataclass
class VendorRequest:
    """A supply request raised against a vendor. Status only moves forward."""
    id: str
    vendor_id: str
    vendor_name: str
    product_id: str
    product_name: str
    quantity: int
    expected_date: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: str = ""

    def __post_init__(self):
        self.status = parse_choice(RequestStatus, self.status, "status")
        if _non_negative_int(self.quantity, "quantity") == 0:
            raise ValidationError("Requested quantity must be greater than zero.")

    def transition(self, new_status):
        """Return a copy in `new_status`, or raise if the move is not allowed."""
        new_status = parse_choice(RequestStatus, new_status, "status")
        if new_status not in REQUEST_TRANSITIONS[self.status]:
            raise ValidationError(
                f"Cannot move request {self.id} from {self.status.value} to {new_status.value}.")
        return replace(self, status=new_status)

    def to_dict(self):
        return {
            'id': self.id,
            'vendorId': self.vendor_id,
            'vendorName': self.vendor_name,
            'productId': self.product_id,
            'productName': self.product_name,
            'quantity': self.quantity,
            'expectedDate': self.expected_date,
            'status': self.status.value,
            'createdAt': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            id=data['id'],
            vendor_id=data['vendorId'],
            vendor_name=data['vendorName'],
            product_id=data['productId'],
            product_name=data['productName'],
            quantity=data['quantity'],
            expected_date=data['expectedDate'],
            status=data.get('status', RequestStatus.PENDING),
            created_at=data.get('createdAt', ''),
        )


@dataclass
class CartLine:
    product_id: str
    quantity: int

    def __post_init__(self):
        self.quantity = _non_negative_int(self.quantity, "quantity")


@dataclass
class CartSession:
    """
    The single working cart. Scratch state: nothing here is financial truth
    until it is committed into an Order.
    """
    lines: List[CartLine] = field(default_factory=list)
    customer_name: str = ""
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_gstin: Optional[str] = None
    discount_percentage: Decimal = Decimal("0")

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Re-check quantities and discount; either may have been set after construction."""
        for line in self.lines:
            line.quantity = _non_negative_int(line.quantity, "quantity")
        self.discount_percentage = check_discount(self.discount_percentage)

    def find(self, product_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def quantity_of(self, product_id: str) -> int:
        line = self.find(product_id)
        return line.quantity if line else 0

    @property
    def active_lines(self):
        """Lines with a positive quantity; a zero line counts as absent."""
        return [line for line in self.lines if line.quantity > 0]

    @property
    def is_empty(self):
        return not self.active_lines

    def clear(self):
        self.lines = []
        self.customer_name = ""
        self.customer_phone = None
        self.customer_address = None
        self.customer_gstin = None
        self.discount_percentage = Decimal("0")


@dataclass(frozen=True)
class OrderItem:
    """A frozen invoice line, decoupled from the live product."""
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    gst_percentage: Decimal
    subtotal: Decimal
    total_with_gst: Decimal

    def to_dict(self):
        return {
            'productId': self.product_id,
            'productName': self.product_name,
            'quantity': self.quantity,
            'unitPrice': float(self.unit_price),
            'gstPercentage': float(self.gst_percentage),
            'subtotal': float(self.subtotal),
            'totalWithGst': float(self.total_with_gst),
        }

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            product_id=data['productId'],
            product_name=data['productName'],
            quantity=int(data['quantity']),
            unit_price=to_decimal(data['unitPrice']),
            gst_percentage=to_decimal(data['gstPercentage']),
            subtotal=to_decimal(data['subtotal']),
            total_with_gst=to_decimal(data['totalWithGst']),
        )


# Optional customer fields: omitted from the serialized order when absent
OPTIONAL_CUSTOMER_FIELDS = (
    ('customer_phone', 'customerPhone'),
    ('customer_address', 'customerAddress'),
    ('customer_gstin', 'customerGstin'),
)


@dataclass(frozen=True)
class Order:
    """An immutable sales order. Totals are frozen at commit time."""
    id: str
    invoice_number: str
    date: datetime
    customer_id: str
    customer_name: str
    items: Tuple[OrderItem, ...]
    total_amount: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    total_gst: Decimal
    grand_total: Decimal
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_gstin: Optional[str] = None

    @property
    def taxable_amount(self):
        return self.total_amount - self.discount_amount

    def to_dict(self):
        data = {
            'id': self.id,
            'invoiceNumber': self.invoice_number,
            'date': self.date.isoformat(),
            'customerId': self.customer_id,
            'customerName': self.customer_name,
        }
        for attr, key in OPTIONAL_CUSTOMER_FIELDS:
            value = clean_text(getattr(self, attr))
            if value is not None:
                data[key] = value
        data.update({
            'items': [item.to_dict() for item in self.items],
            'totalAmount': float(self.total_amount),
            'discountPercentage': float(self.discount_percentage),
            'discountAmount': float(self.discount_amount),
            'totalGst': float(self.total_gst),
            'grandTotal': float(self.grand_total),
        })
        return data

    @classmethod
    def from_dict(cls, data: dict):
        return cls(
            id=data['id'],
            invoice_number=data['invoiceNumber'],
            date=datetime.fromisoformat(data['date']),
            customer_id=data.get('customerId', ''),
            customer_name=data['customerName'],
            customer_phone=clean_text(data.get('customerPhone')),
            customer_address=clean_text(data.get('customerAddress')),
            customer_gstin=clean_text(data.get('customerGstin')),
            items=tuple(OrderItem.from_dict(item) for item in data['items']),
            total_amount=to_decimal(data['totalAmount']),
            discount_percentage=to_decimal(data.get('discountPercentage', 0)),
            discount_amount=to_decimal(data.get('discountAmount', 0)),
            total_gst=to_decimal(data['totalGst']),
            grand_total=to_decimal(data['grandTotal']),
        )
