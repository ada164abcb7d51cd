"""
View Definitions

Named, parameterless queries stored in the database as views. Views are
never materialized: every read recomputes them from the current relations.

- v_country_revenue: Raw Store revenue per country
- v_invoice_details: invoices, items and products, with the customer
  left-joined so invoices of unknown customers stay listed
"""

from typing import Callable, Dict, List, Optional

import polars as pl
import structlog
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.selectable import Select

from online_retail.database.connection import fetch_frame
from online_retail.database.models import (
    customers,
    invoice_items,
    invoices,
    products,
    raw_records,
    v_country_revenue,
    v_invoice_details,
)

logger = structlog.get_logger(__name__)


def country_revenue_view_query() -> Select:
    return (
        select(
            raw_records.c.country.label("country"),
            func.sum(raw_records.c.quantity * raw_records.c.unit_price).label("total_revenue"),
        )
        .group_by(raw_records.c.country)
    )


def invoice_details_view_query() -> Select:
    i, ii, p, c = invoices.c, invoice_items.c, products.c, customers.c
    return (
        select(
            i.invoice_no.label("invoice_no"),
            i.invoice_date.label("invoice_date"),
            c.customer_id.label("customer_id"),
            c.country.label("country"),
            p.stock_code.label("stock_code"),
            p.description.label("description"),
            ii.quantity.label("quantity"),
            ii.unit_price.label("unit_price"),
            (ii.quantity * ii.unit_price).label("line_revenue"),
        )
        .select_from(
            invoices
            .join(invoice_items, i.invoice_no == ii.invoice_no)
            .join(products, ii.stock_code == p.stock_code)
            .outerjoin(customers, i.customer_id == c.customer_id)
        )
    )


VIEW_DEFINITIONS: Dict[str, Callable[[], Select]] = {
    v_country_revenue.name: country_revenue_view_query,
    v_invoice_details.name: invoice_details_view_query,
}


def _compile(conn: AsyncConnection, query: Select) -> str:
    """Render a SELECT as literal SQL for the connection's dialect"""
    return str(query.compile(dialect=conn.dialect, compile_kwargs={"literal_binds": True}))


async def drop_views(conn: AsyncConnection) -> None:
    """Drop every view if it exists"""
    quote = conn.dialect.identifier_preparer.quote
    for name in VIEW_DEFINITIONS:
        await conn.execute(text(f"DROP VIEW IF EXISTS {quote(name)}"))


async def create_views(conn: AsyncConnection) -> List[str]:
    """
    Drop and recreate every view.

    Returns:
        Names of the views created
    """
    quote = conn.dialect.identifier_preparer.quote
    await drop_views(conn)

    created = []
    for name, definition in VIEW_DEFINITIONS.items():
        await conn.execute(text(f"CREATE VIEW {quote(name)} AS {_compile(conn, definition())}"))
        created.append(name)

    logger.info("Views created", views=created)
    return created


async def read_country_revenue_view(conn: AsyncConnection, limit: Optional[int] = 10) -> pl.DataFrame:
    """Read ``v_country_revenue``, highest revenue first"""
    v = v_country_revenue.c
    stmt = select(v_country_revenue).order_by(v.total_revenue.desc(), v.country)
    if limit is not None:
        stmt = stmt.limit(limit)
    return await fetch_frame(conn, stmt)


async def read_invoice_details_view(conn: AsyncConnection, limit: Optional[int] = 20) -> pl.DataFrame:
    """Read ``v_invoice_details`` in invoice order"""
    v = v_invoice_details.c
    stmt = select(v_invoice_details).order_by(v.invoice_date, v.invoice_no, v.stock_code)
    if limit is not None:
        stmt = stmt.limit(limit)
    return await fetch_frame(conn, stmt)
