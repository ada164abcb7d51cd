"""
Aggregator

Revenue and quantity reporting over the derived relations and the Raw Store.

Every query returns a polars DataFrame. Ranked results sort by their metric
descending, then by the grouping key ascending, so ties are reproducible.
An equality filter that matches nothing returns an empty frame.
"""

from typing import Any, Dict, Optional

import polars as pl
import structlog
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.elements import ColumnElement

from online_retail.database.connection import fetch_frame
from online_retail.database.models import (
    customers,
    invoice_items,
    invoices,
    products,
    raw_records,
)
from online_retail.transformation.schema_deriver import customer_id_expr

logger = structlog.get_logger(__name__)


class DimensionError(ValueError):
    """Raised for an unknown grouping or filter dimension"""


def _line_revenue(table) -> ColumnElement:
    return table.c.quantity * table.c.unit_price


# =============================================================================
# FILTER / GROUP BY
# =============================================================================

async def recent_invoices_for_customer(
    conn: AsyncConnection,
    customer_id: int,
    limit: int = 20,
) -> pl.DataFrame:
    """Invoice headers of one customer, newest first"""
    stmt = (
        select(invoices.c.invoice_no, invoices.c.invoice_date, invoices.c.customer_id)
        .where(invoices.c.customer_id == customer_id)
        .order_by(invoices.c.invoice_date.desc(), invoices.c.invoice_no)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def revenue_by_country(conn: AsyncConnection, limit: Optional[int] = None) -> pl.DataFrame:
    """Total revenue per country from the Raw Store"""
    total_revenue = func.sum(_line_revenue(raw_records)).label("total_revenue")
    stmt = (
        select(raw_records.c.country, total_revenue)
        .group_by(raw_records.c.country)
        .order_by(total_revenue.desc(), raw_records.c.country)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return await fetch_frame(conn, stmt)


async def quantity_by_product(conn: AsyncConnection, limit: int = 20) -> pl.DataFrame:
    """Units sold per (stock_code, description)"""
    p, ii = products.c, invoice_items.c
    total_quantity = func.sum(ii.quantity).label("total_quantity_sold")
    stmt = (
        select(p.stock_code, p.description, total_quantity)
        .select_from(products.join(invoice_items, p.stock_code == ii.stock_code))
        .group_by(p.stock_code, p.description)
        .order_by(total_quantity.desc(), p.stock_code, p.description)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def country_revenue(conn: AsyncConnection, country: str) -> pl.DataFrame:
    """Revenue of a single country; no row when the country is absent"""
    stmt = (
        select(
            raw_records.c.country,
            func.sum(_line_revenue(raw_records)).label("total_revenue"),
        )
        .where(raw_records.c.country == country)
        .group_by(raw_records.c.country)
    )
    return await fetch_frame(conn, stmt)


# =============================================================================
# JOINS
# =============================================================================

async def invoices_with_customers(conn: AsyncConnection, limit: int = 20) -> pl.DataFrame:
    """Invoices that match a known customer (inner join)"""
    i, c = invoices.c, customers.c
    stmt = (
        select(i.invoice_no, i.invoice_date, i.customer_id, c.country)
        .select_from(invoices.join(customers, i.customer_id == c.customer_id))
        .order_by(i.invoice_no, i.invoice_date, c.country)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def invoices_with_optional_customers(conn: AsyncConnection, limit: int = 20) -> pl.DataFrame:
    """All invoices, with the customer's country where one is known (left join)"""
    i, c = invoices.c, customers.c
    stmt = (
        select(i.invoice_no, i.invoice_date, i.customer_id, c.country)
        .select_from(invoices.outerjoin(customers, i.customer_id == c.customer_id))
        .order_by(i.invoice_date, i.invoice_no, c.country)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def customers_with_invoices(conn: AsyncConnection, limit: int = 20) -> pl.DataFrame:
    """
    Customers having at least one invoice.

    Right join emulated as customers LEFT JOIN invoices filtered on a
    matched invoice, which engines without RIGHT JOIN also accept.
    """
    i, c = invoices.c, customers.c
    stmt = (
        select(c.customer_id, c.country, i.invoice_no, i.invoice_date)
        .select_from(customers.outerjoin(invoices, i.customer_id == c.customer_id))
        .where(i.invoice_no.is_not(None))
        .order_by(c.customer_id, i.invoice_date, i.invoice_no)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def product_performance(conn: AsyncConnection, limit: int = 15) -> pl.DataFrame:
    """Quantity and revenue per product across items, products and invoices"""
    p, ii, i = products.c, invoice_items.c, invoices.c
    revenue = func.sum(_line_revenue(invoice_items)).label("revenue")
    stmt = (
        select(
            p.stock_code,
            p.description,
            func.sum(ii.quantity).label("total_qty"),
            revenue,
        )
        .select_from(
            invoice_items
            .join(products, ii.stock_code == p.stock_code)
            .join(invoices, ii.invoice_no == i.invoice_no)
        )
        .group_by(p.stock_code, p.description)
        .order_by(revenue.desc(), p.stock_code, p.description)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


# =============================================================================
# SUBQUERIES & NESTED AGGREGATES
# =============================================================================

async def high_value_customers(conn: AsyncConnection, limit: int = 20) -> pl.DataFrame:
    """
    Customers whose revenue exceeds the average customer revenue.

    The per-customer totals are computed once in a CTE; the average is a
    scalar subquery over the same CTE.
    """
    i, ii = invoices.c, invoice_items.c
    customer_sales = (
        select(
            i.customer_id,
            func.sum(_line_revenue(invoice_items)).label("revenue"),
        )
        .select_from(invoices.join(invoice_items, i.invoice_no == ii.invoice_no))
        .where(i.customer_id.is_not(None))
        .group_by(i.customer_id)
        .cte("customer_sales")
    )
    average_revenue = select(func.avg(customer_sales.c.revenue)).scalar_subquery()

    stmt = (
        select(customer_sales.c.customer_id, customer_sales.c.revenue)
        .where(customer_sales.c.revenue > average_revenue)
        .order_by(customer_sales.c.revenue.desc(), customer_sales.c.customer_id)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def top_countries(conn: AsyncConnection, limit: int = 5) -> pl.DataFrame:
    """Top countries by revenue, ranked over a grouped subquery"""
    per_country = (
        select(
            raw_records.c.country,
            func.sum(_line_revenue(raw_records)).label("total_revenue"),
        )
        .group_by(raw_records.c.country)
        .subquery("t")
    )
    stmt = (
        select(per_country.c.country, per_country.c.total_revenue)
        .order_by(per_country.c.total_revenue.desc(), per_country.c.country)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def revenue_summary(conn: AsyncConnection) -> pl.DataFrame:
    """Overall revenue and average line revenue"""
    line_revenue = _line_revenue(raw_records)
    stmt = select(
        func.sum(line_revenue).label("total_revenue"),
        func.avg(line_revenue).label("avg_line_revenue"),
    )
    return await fetch_frame(conn, stmt)


async def average_invoice_revenue(conn: AsyncConnection) -> pl.DataFrame:
    """Average of per-invoice revenue"""
    per_invoice = (
        select(
            raw_records.c.invoice_no,
            func.sum(_line_revenue(raw_records)).label("invoice_revenue"),
        )
        .group_by(raw_records.c.invoice_no)
        .subquery("per_invoice")
    )
    stmt = select(func.avg(per_invoice.c.invoice_revenue).label("avg_invoice_revenue"))
    return await fetch_frame(conn, stmt)


# =============================================================================
# GENERIC AGGREGATION
# =============================================================================

def _dimensions() -> Dict[str, ColumnElement]:
    return {
        "country": raw_records.c.country,
        "stock_code": raw_records.c.stock_code,
        "customer_id": customer_id_expr(),
        "invoice_no": raw_records.c.invoice_no,
    }


async def revenue_by(
    conn: AsyncConnection,
    dimension: str,
    where: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> pl.DataFrame:
    """
    Aggregate the Raw Store by one dimension.

    Args:
        conn: Open connection
        dimension: country, stock_code, customer_id or invoice_no
        where: Equality filters applied before grouping, keyed by dimension
        limit: Keep only the top rows

    Returns:
        DataFrame with the dimension, total_quantity, total_revenue,
        line_count and invoice_count. Lines without a usable customer id
        form no customer_id group; for other dimensions NULL keys group
        together, as in revenue_by_country.

    Raises:
        DimensionError: If a dimension name is unknown
    """
    dimensions = _dimensions()
    if dimension not in dimensions:
        raise DimensionError(f"Unknown dimension: {dimension}. Expected one of {sorted(dimensions)}")

    key = dimensions[dimension]
    total_revenue = func.sum(_line_revenue(raw_records)).label("total_revenue")
    stmt = (
        select(
            key.label(dimension),
            func.sum(raw_records.c.quantity).label("total_quantity"),
            total_revenue,
            func.count().label("line_count"),
            func.count(distinct(raw_records.c.invoice_no)).label("invoice_count"),
        )
        .group_by(key)
        .order_by(total_revenue.desc(), key)
    )
    if dimension == "customer_id":
        stmt = stmt.where(key.is_not(None))

    for name, value in (where or {}).items():
        if name not in dimensions:
            raise DimensionError(f"Unknown filter dimension: {name}")
        stmt = stmt.where(dimensions[name] == value)

    if limit is not None:
        stmt = stmt.limit(limit)

    frame = await fetch_frame(conn, stmt)
    logger.debug("Aggregated raw store", dimension=dimension, filters=where, rows=len(frame))
    return frame
