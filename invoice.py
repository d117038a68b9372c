# invoice.py
"""
Invoice layout.

`render_invoice` turns a committed Order into a Document: pages of
positioned text, rule, image and table blocks measured in points from the
top-left corner of an A4 page. It never touches the database or the network;
the images it places come from an InvoiceAssets set loaded beforehand by
`load_assets`, where a missing or broken image is simply left out.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

import httpx
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit

from errors import AssetUnavailable
from models import Order, clean_text, money
from words import amount_to_words

logger = logging.getLogger("craftline.invoice")

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 40
BOTTOM_LIMIT = PAGE_HEIGHT - 50
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN
BILL_TO_WIDTH = 300

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)
INDIGO = (79, 70, 229)
GREY = (100, 100, 100)
LIGHT_GREY = (200, 200, 200)
FOOTER_GREY = (150, 150, 150)
RED = (220, 38, 38)

LOGO_TOP = 20
LOGO_BOX = 80
WATERMARK_BOX = 300
WATERMARK_OPACITY = 0.08
QR_BOX = 90
SUMMARY_X = 360

# Section names, in the order they appear on the page
HEADER = "header"
WATERMARK = "watermark"
META = "meta"
BILL_TO = "bill_to"
ITEMS = "items"
SUMMARY = "summary"
AMOUNT_IN_WORDS = "amount_in_words"
PAYMENT_QR = "payment_qr"
TERMS = "terms"
SIGNATURES = "signatures"

ASSET_NAMES = ("logo", "watermark", "qr")

DEFAULT_TERMS = (
    "1. Goods once sold will not be taken back or exchanged.",
    "2. Please check the goods at the time of delivery; claims are not accepted later.",
    "3. Payment is due on receipt of this invoice.",
    "4. All disputes are subject to local jurisdiction only.",
)


@dataclass(frozen=True)
class IssuerInfo:
    """Static text printed on every invoice."""
    name: str = "CRAFTLINE PRODUCTION"
    tagline: str = "Manufacturer of Fresh Fold Tissue"
    contact: Tuple[str, ...] = ("Contact: 9477110150", "Email: craftlineproduction25@gmail.com")
    terms: Tuple[str, ...] = DEFAULT_TERMS
    qr_caption: str = "Scan to pay"
    disclaimer: str = "Thank you for choosing Craftline Production! This is a computer generated invoice."

    @classmethod
    def from_config(cls, config: dict):
        invoice_cfg = (config or {}).get("invoice", {})
        issuer_cfg = invoice_cfg.get("issuer", {})
        defaults = cls()
        return cls(
            name=issuer_cfg.get("name", defaults.name),
            tagline=issuer_cfg.get("tagline", defaults.tagline),
            contact=tuple(issuer_cfg.get("contact", defaults.contact)),
            terms=tuple(invoice_cfg.get("terms", defaults.terms)),
            qr_caption=issuer_cfg.get("qr_caption", defaults.qr_caption),
            disclaimer=issuer_cfg.get("disclaimer", defaults.disclaimer),
        )


# Assets
@dataclass(frozen=True)
class Asset:
    """A decoded image: raw bytes plus pixel size."""
    name: str
    data: bytes = field(repr=False)
    width: int
    height: int


@dataclass(frozen=True)
class InvoiceAssets:
    logo: Optional[Asset] = None
    watermark: Optional[Asset] = None
    qr: Optional[Asset] = None
    problems: Tuple[AssetUnavailable, ...] = ()


def decode_asset(name: str, data: bytes) -> Asset:
    """Check the bytes are an image reportlab can place, and read its size."""
    width, height = ImageReader(BytesIO(data)).getSize()
    if not width or not height:
        raise ValueError("image has no size")
    return Asset(name, data, int(width), int(height))


async def _fetch_bytes(client: httpx.AsyncClient, source: str) -> bytes:
    if source.startswith(("http://", "https://")):
        response = await client.get(source)
        response.raise_for_status()
        return response.content
    return await asyncio.to_thread(Path(source).expanduser().read_bytes)


async def _fetch_one(client, name: str, source: str):
    try:
        data = await _fetch_bytes(client, source)
        return decode_asset(name, data), None
    except Exception as e:
        problem = AssetUnavailable(name, source, str(e) or e.__class__.__name__)
        logger.warning(str(problem))
        return None, problem


async def fetch_assets(sources: dict, timeout: float = 5.0) -> InvoiceAssets:
    """
    Fetch logo, watermark and QR images concurrently from paths or URLs.
    Any that fail come back as None with an AssetUnavailable in `problems`.
    """
    wanted = {name: src for name, src in (sources or {}).items()
              if name in ASSET_NAMES and clean_text(src)}
    if not wanted:
        return InvoiceAssets()
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        results = await asyncio.gather(*(_fetch_one(client, name, src)
                                         for name, src in wanted.items()))
    loaded = {}
    problems = []
    for name, (asset, problem) in zip(wanted, results):
        if asset is not None:
            loaded[name] = asset
        if problem is not None:
            problems.append(problem)
    return InvoiceAssets(problems=tuple(problems), **loaded)


def load_assets(sources: dict, timeout: float = 5.0) -> InvoiceAssets:
    """Blocking wrapper around fetch_assets."""
    return asyncio.run(fetch_assets(sources, timeout=timeout))


# Document blocks
@dataclass(frozen=True)
class TextBlock:
    section: str
    page: int
    x: float
    y: float  # baseline
    text: str
    font: str = "Helvetica"
    size: float = 10
    color: tuple = BLACK
    align: str = "left"


@dataclass(frozen=True)
class RuleBlock:
    section: str
    page: int
    x1: float
    y1: float
    x2: float
    y2: float
    color: tuple = LIGHT_GREY
    width: float = 0.75


@dataclass(frozen=True)
class ImageBlock:
    section: str
    page: int
    x: float
    y: float  # top edge
    width: float
    height: float
    asset: Asset
    opacity: float = 1.0


@dataclass(frozen=True)
class Column:
    title: str
    width: float
    align: str


@dataclass(frozen=True)
class TableBlock:
    """One page's slice of the line-item table. Cells may hold several lines."""
    section: str
    page: int
    x: float
    y: float  # top edge
    columns: Tuple[Column, ...]
    rows: Tuple[Tuple[str, ...], ...]
    row_heights: Tuple[float, ...]
    header_height: float = 20
    font_size: float = 9
    header_fill: tuple = INDIGO

    @property
    def height(self):
        return self.header_height + sum(self.row_heights)


@dataclass(frozen=True)
class Document:
    width: float
    height: float
    page_count: int
    blocks: tuple

    @property
    def sections(self):
        """Section names in order of first appearance."""
        seen = []
        for block in self.blocks:
            if block.section not in seen:
                seen.append(block.section)
        return seen

    def section(self, name: str):
        return [block for block in self.blocks if block.section == name]

    def page(self, number: int):
        return [block for block in self.blocks if block.page == number]

    def texts(self, section: str = None):
        return [block.text for block in self.blocks
                if isinstance(block, TextBlock) and (section is None or block.section == section)]


# Formatting helpers
def format_inr(value) -> str:
    return f"INR {money(value):,.2f}"


def format_percent(value) -> str:
    # 18.00 -> "18", 12.50 -> "12.5"
    return format(money(value).normalize(), "f")


def format_date(value) -> str:
    return value.strftime("%d %b %Y")


def _fit(asset: Asset, box: float):
    """Scale an image to fit a square box, keeping its aspect ratio."""
    scale = box / max(asset.width, asset.height)
    return asset.width * scale, asset.height * scale


ITEM_COLUMNS = (
    Column("Sl.", 30, "center"),
    Column("Description", CONTENT_WIDTH - 285, "left"),
    Column("Qty", 45, "center"),
    Column("Unit Price", 75, "right"),
    Column("GST%", 50, "center"),
    Column("Total (INR)", 85, "right"),
)
LINE_HEIGHT = 11
CELL_PADDING = 4


class _Layout:
    """Cursor over the pages being filled."""
    def __init__(self, watermark: Optional[Asset]):
        self.blocks = []
        self.page = 0
        self.y = MARGIN
        self.watermark = watermark

    def add(self, block):
        self.blocks.append(block)

    def text(self, section, x, y, text, **style):
        self.add(TextBlock(section, self.page, x, y, text, **style))

    def place_watermark(self):
        if self.watermark is None:
            return
        width, height = _fit(self.watermark, WATERMARK_BOX)
        self.add(ImageBlock(WATERMARK, self.page, (PAGE_WIDTH - width) / 2,
                            (PAGE_HEIGHT - height) / 2, width, height,
                            self.watermark, WATERMARK_OPACITY))

    def new_page(self):
        self.page += 1
        self.y = MARGIN
        self.place_watermark()

    def ensure(self, height: float):
        if self.y + height > BOTTOM_LIMIT:
            self.new_page()


def _header(layout: _Layout, issuer: IssuerInfo, logo: Optional[Asset]):
    """Issuer text on the left, logo top-right. Returns (text bottom, logo bottom or None)."""
    layout.text(HEADER, MARGIN, 50, issuer.name, font="Helvetica-Bold", size=22, color=INDIGO)
    y = 50
    if clean_text(issuer.tagline):
        y = 66
        layout.text(HEADER, MARGIN, y, issuer.tagline, font="Helvetica-Oblique", size=10, color=GREY)
    for line in issuer.contact:
        y += 13
        layout.text(HEADER, MARGIN, y, line, size=10, color=GREY)
    logo_bottom = None
    if logo is not None:
        width, height = _fit(logo, LOGO_BOX)
        layout.add(ImageBlock(HEADER, layout.page, PAGE_WIDTH - MARGIN - width,
                              LOGO_TOP, width, height, logo))
        logo_bottom = LOGO_TOP + height
    return y + 4, logo_bottom


def _meta(layout: _Layout, order: Order, header_bottom: float, logo_bottom):
    # Sits under the logo when there is one, otherwise takes its place top-right
    right = PAGE_WIDTH - MARGIN
    top = logo_bottom + 14 if logo_bottom is not None else 50
    layout.text(META, right, top, f"Invoice No: {order.invoice_number}",
                font="Helvetica-Bold", size=12, align="right")
    layout.text(META, right, top + 15, f"Date: {format_date(order.date)}", size=11, align="right")
    rule_y = max(header_bottom, top + 15) + 10
    layout.add(RuleBlock(META, layout.page, MARGIN, rule_y, right, rule_y))
    layout.y = rule_y + 20


def _bill_to(layout: _Layout, order: Order):
    y = layout.y
    layout.text(BILL_TO, MARGIN, y, "INVOICE TO:", size=11, color=GREY)
    for line in simpleSplit(order.customer_name.upper(), "Helvetica-Bold", 14, BILL_TO_WIDTH):
        y += 17
        layout.text(BILL_TO, MARGIN, y, line, font="Helvetica-Bold", size=14)
    phone = clean_text(order.customer_phone)
    if phone:
        y += 14
        layout.text(BILL_TO, MARGIN, y, f"Phone: {phone}")
    address = clean_text(order.customer_address)
    if address:
        for part in address.splitlines():
            for line in simpleSplit(part.strip(), "Helvetica", 10, BILL_TO_WIDTH):
                y += 13
                layout.text(BILL_TO, MARGIN, y, line)
    gstin = clean_text(order.customer_gstin)
    if gstin:
        y += 14
        layout.text(BILL_TO, MARGIN, y, f"GSTIN: {gstin}")
    layout.y = y + 16


def _item_row(index: int, item):
    description = "\n".join(simpleSplit(item.product_name, "Helvetica", 9,
                                        ITEM_COLUMNS[1].width - 2 * CELL_PADDING)) or "-"
    row = (
        str(index),
        description,
        str(item.quantity),
        f"{money(item.unit_price):,.2f}",
        f"{format_percent(item.gst_percentage)}%",
        f"{money(item.total_with_gst):,.2f}",
    )
    height = description.count("\n") * LINE_HEIGHT + LINE_HEIGHT + 7
    return row, height


def _items(layout: _Layout, order: Order):
    """Line-item table, split across pages with the header repeated."""
    header_height = TableBlock.header_height
    rows, heights = [], []
    layout.ensure(header_height + 18)
    top = layout.y

    def flush():
        layout.add(TableBlock(ITEMS, layout.page, MARGIN, top, ITEM_COLUMNS,
                              tuple(rows), tuple(heights)))

    used = header_height
    for index, item in enumerate(order.items, start=1):
        row, height = _item_row(index, item)
        if top + used + height > BOTTOM_LIMIT and rows:
            flush()
            layout.new_page()
            top = layout.y
            rows, heights, used = [], [], header_height
        rows.append(row)
        heights.append(height)
        used += height
    flush()
    layout.y = top + used


def _summary_and_words(layout: _Layout, order: Order):
    """Totals column on the right, amount in words wrapped into the space on its left."""
    words_width = SUMMARY_X - MARGIN - 20
    word_lines = simpleSplit(amount_to_words(order.grand_total), "Helvetica-Oblique", 9, words_width)
    show_discount = order.discount_amount > 0
    summary_height = 16 * (4 if show_discount else 3) + 24
    words_height = 14 + LINE_HEIGHT * len(word_lines)
    layout.ensure(20 + max(summary_height, words_height))

    top = layout.y + 20
    right = PAGE_WIDTH - MARGIN
    y = top
    layout.text(SUMMARY, SUMMARY_X, y, "Subtotal:")
    layout.text(SUMMARY, right, y, format_inr(order.total_amount), align="right")
    if show_discount:
        y += 16
        label = f"Discount ({format_percent(order.discount_percentage)}%):"
        layout.text(SUMMARY, SUMMARY_X, y, label, color=RED)
        layout.text(SUMMARY, right, y, f"- {format_inr(order.discount_amount)}", color=RED, align="right")
    y += 16
    layout.text(SUMMARY, SUMMARY_X, y, "Total GST:")
    layout.text(SUMMARY, right, y, format_inr(order.total_gst), align="right")
    y += 8
    layout.add(RuleBlock(SUMMARY, layout.page, SUMMARY_X, y, right, y, color=GREY))
    y += 16
    layout.text(SUMMARY, SUMMARY_X, y, "Grand Total:", font="Helvetica-Bold", size=12)
    layout.text(SUMMARY, right, y, format_inr(order.grand_total), font="Helvetica-Bold",
                size=12, align="right")
    summary_bottom = y

    wy = top
    layout.text(AMOUNT_IN_WORDS, MARGIN, wy, "Amount in words:", font="Helvetica-Bold", size=9)
    for line in word_lines:
        wy += LINE_HEIGHT
        layout.text(AMOUNT_IN_WORDS, MARGIN, wy, line, font="Helvetica-Oblique", size=9)
    layout.y = max(summary_bottom, wy) + 10


def _payment_qr(layout: _Layout, qr: Asset, caption: str):
    width, height = _fit(qr, QR_BOX)
    layout.ensure(height + 30)
    top = layout.y + 10
    layout.add(ImageBlock(PAYMENT_QR, layout.page, MARGIN, top, width, height, qr))
    layout.text(PAYMENT_QR, MARGIN + width / 2, top + height + 11, caption, size=8,
                color=GREY, align="center")
    layout.y = top + height + 16


def _terms(layout: _Layout, terms):
    lines = []
    for term in terms:
        lines.extend(simpleSplit(term, "Helvetica", 8, CONTENT_WIDTH))
    layout.ensure(30 + 10 * len(lines))
    y = layout.y + 20
    layout.text(TERMS, MARGIN, y, "Terms & Conditions", font="Helvetica-Bold", size=10)
    for line in lines:
        y += 10
        layout.text(TERMS, MARGIN, y, line, size=8, color=GREY)
    layout.y = y


def _signatures(layout: _Layout, issuer: IssuerInfo):
    layout.ensure(110)
    line_y = layout.y + 60
    right = PAGE_WIDTH - MARGIN
    width = 160
    layout.text(SIGNATURES, right - width / 2, line_y - 34, f"For {issuer.name}",
                font="Helvetica-Bold", size=9, align="center")
    layout.add(RuleBlock(SIGNATURES, layout.page, MARGIN, line_y, MARGIN + width, line_y, color=GREY))
    layout.add(RuleBlock(SIGNATURES, layout.page, right - width, line_y, right, line_y, color=GREY))
    layout.text(SIGNATURES, MARGIN + width / 2, line_y + 12, "Receiver's Signature",
                size=9, align="center")
    layout.text(SIGNATURES, right - width / 2, line_y + 12, "Authorized Signatory",
                size=9, align="center")
    layout.text(SIGNATURES, PAGE_WIDTH / 2, line_y + 36, issuer.disclaimer, size=8,
                color=FOOTER_GREY, align="center")
    layout.y = line_y + 36


def render_invoice(order: Order, assets: InvoiceAssets = None, issuer: IssuerInfo = None) -> Document:
    """
    Lay out the invoice for a committed order. Same order and same assets
    always give the same Document.
    """
    assets = assets or InvoiceAssets()
    issuer = issuer or IssuerInfo()
    layout = _Layout(assets.watermark)

    header_bottom, logo_bottom = _header(layout, issuer, assets.logo)
    layout.place_watermark()
    _meta(layout, order, header_bottom, logo_bottom)
    _bill_to(layout, order)
    _items(layout, order)
    _summary_and_words(layout, order)
    if assets.qr is not None:
        _payment_qr(layout, assets.qr, issuer.qr_caption)
    _terms(layout, issuer.terms)
    _signatures(layout, issuer)

    return Document(PAGE_WIDTH, PAGE_HEIGHT, layout.page + 1, tuple(layout.blocks))
