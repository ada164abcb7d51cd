"""
Database Models - Raw Store and Derived Relations

The Raw Store is a mapped table holding order lines exactly as ingested.
The four derived relations are plain Core tables: they are projections of
the Raw Store without an identity of their own, so they carry no primary
key and are rebuilt wholesale on every run.

Raw Store:
- RawRecord (online_retail_raw): one row per source order line

Derived Relations:
- customers: distinct (customer_id, country)
- products: distinct (stock_code, description, unit_price)
- invoices: distinct (invoice_no, invoice_date, customer_id)
- invoice_items: one row per line with both keys present

Views (read-only shapes, created from SELECT statements):
- v_country_revenue
- v_invoice_details
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


RAW_TABLE = "online_retail_raw"

# Column order of a Raw Record as it appears in the source file
RAW_COLUMNS = [
    "invoice_no",
    "stock_code",
    "description",
    "quantity",
    "invoice_date",
    "unit_price",
    "customer_id",
    "country",
]


# =============================================================================
# RAW STORE
# =============================================================================

class RawRecord(Base):
    """
    Raw order line

    customer_id is stored as text because the source file carries values
    such as ``17850.0`` or blanks; the schema deriver casts it.
    """
    __tablename__ = RAW_TABLE

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_no: Mapped[Optional[str]] = mapped_column(String(20))
    stock_code: Mapped[Optional[str]] = mapped_column(String(20))
    description: Mapped[Optional[str]] = mapped_column(String(255))
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    invoice_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    unit_price: Mapped[Optional[float]] = mapped_column(Float)
    customer_id: Mapped[Optional[str]] = mapped_column(String(20))
    country: Mapped[Optional[str]] = mapped_column(String(100))


raw_records = RawRecord.__table__


# =============================================================================
# DERIVED RELATIONS
# =============================================================================

customers = Table(
    "customers",
    Base.metadata,
    Column("customer_id", Integer),
    Column("country", String(100)),
)

products = Table(
    "products",
    Base.metadata,
    Column("stock_code", String(20)),
    Column("description", String(255)),
    Column("unit_price", Float),
)

invoices = Table(
    "invoices",
    Base.metadata,
    Column("invoice_no", String(20)),
    Column("invoice_date", DateTime),
    Column("customer_id", Integer),
)

invoice_items = Table(
    "invoice_items",
    Base.metadata,
    Column("invoice_no", String(20)),
    Column("stock_code", String(20)),
    Column("quantity", Integer),
    Column("unit_price", Float),
)

DERIVED_TABLES = [customers, products, invoices, invoice_items]


# =============================================================================
# VIEWS
# =============================================================================

# Views live in their own metadata so create_all() never emits them as tables
view_metadata = MetaData()

v_country_revenue = Table(
    "v_country_revenue",
    view_metadata,
    Column("country", String(100)),
    Column("total_revenue", Float),
)

v_invoice_details = Table(
    "v_invoice_details",
    view_metadata,
    Column("invoice_no", String(20)),
    Column("invoice_date", DateTime),
    Column("customer_id", Integer),
    Column("country", String(100)),
    Column("stock_code", String(20)),
    Column("description", String(255)),
    Column("quantity", Integer),
    Column("unit_price", Float),
    Column("line_revenue", Float),
)
