"""Shared fixtures: an in-memory database and a small tissue catalog."""

from __future__ import annotations

from datetime import datetime
from io import BytesIO

import pytest

from checkout import SalesDesk
from database import Database
from models import Product


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


def make_product(product_id="P-A", sku="FF-A", name="Facial Tissue 100 pulls", price="100",
                 gst="18", stock=5, min_threshold=2, category="Facial Tissue", unit="packs"):
    return Product(
        id=product_id,
        sku=sku,
        name=name,
        category=category,
        unit=unit,
        cost_price="60",
        selling_price=price,
        gst_percentage=gst,
        stock_quantity=stock,
        min_threshold=min_threshold,
    )


@pytest.fixture
def catalog(db):
    db.add_product(make_product())
    db.add_product(make_product("P-B", "TR-B", "Toilet Roll 4-ply", price="45.50", gst="12",
                                stock=40, category="Toilet Roll", unit="rolls"))
    db.add_product(make_product("P-C", "NP-C", "Dinner Napkins", price="20", gst="5",
                                stock=0, category="Napkins"))
    return db


@pytest.fixture
def desk(catalog):
    return SalesDesk(catalog)


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 14, 10, 30, 0)


def png_bytes(width=40, height=20, color=(79, 70, 229)):
    from PIL import Image

    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()
