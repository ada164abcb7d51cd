"""
Schema Deriver

Builds the normalized relations from the Raw Store:

- customers      distinct (customer_id, country), known customers only
- products       distinct (stock_code, description, unit_price)
- invoices       distinct (invoice_no, invoice_date, customer_id)
- invoice_items  one row per raw line with invoice_no and stock_code

Each relation is dropped and recreated from a single INSERT ... SELECT.
Rows are inserted in a fixed order, so rebuilding from an unchanged Raw
Store reproduces the same table content.
"""

from dataclasses import dataclass
from typing import Dict
import time

import structlog
from sqlalchemy import (
    Float,
    Integer,
    Table,
    and_,
    case,
    cast,
    func,
    insert,
    not_,
    null,
    select,
)
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.selectable import Select

from online_retail.database.models import (
    customers,
    invoice_items,
    invoices,
    products,
    raw_records,
)

logger = structlog.get_logger(__name__)


@dataclass
class DerivationResult:
    """Result of rebuilding one derived relation"""
    relation: str
    row_count: int
    duration_seconds: float


def has_value(column: ColumnElement) -> ColumnElement:
    """True when an identifying key is neither NULL nor blank"""
    return and_(column.is_not(None), func.trim(column) != "")


def customer_id_expr(column: ColumnElement = raw_records.c.customer_id) -> ColumnElement:
    """
    Integer customer id from the raw text value.

    ``17850`` and ``17850.0`` both become 17850. Anything other than digits
    with at most one dot yields NULL, so the row drops out of ``customers``
    and its invoice keeps no customer reference.
    """
    trimmed = func.trim(column)
    is_numeric = and_(
        trimmed.op("GLOB", is_comparison=True)("[0-9]*"),
        not_(trimmed.op("GLOB", is_comparison=True)("*[^0-9.]*")),
        not_(trimmed.op("GLOB", is_comparison=True)("*.*.*")),
    )
    return case(
        (is_numeric, cast(cast(trimmed, Float), Integer)),
        else_=null(),
    )


def customers_query() -> Select:
    customer_id = customer_id_expr()
    return (
        select(customer_id.label("customer_id"), raw_records.c.country)
        .distinct()
        .where(customer_id.is_not(None))
        .order_by(customer_id, raw_records.c.country)
    )


def products_query() -> Select:
    raw = raw_records.c
    return (
        select(raw.stock_code, raw.description, raw.unit_price)
        .distinct()
        .where(has_value(raw.stock_code))
        .order_by(raw.stock_code, raw.description, raw.unit_price)
    )


def invoices_query() -> Select:
    raw = raw_records.c
    customer_id = customer_id_expr()
    return (
        select(raw.invoice_no, raw.invoice_date, customer_id.label("customer_id"))
        .distinct()
        .where(has_value(raw.invoice_no))
        .order_by(raw.invoice_no, raw.invoice_date, customer_id)
    )


def invoice_items_query() -> Select:
    raw = raw_records.c
    return (
        select(raw.invoice_no, raw.stock_code, raw.quantity, raw.unit_price)
        .where(has_value(raw.invoice_no), has_value(raw.stock_code))
        .order_by(raw.row_id)
    )


async def _rebuild(conn: AsyncConnection, table: Table, query: Select) -> DerivationResult:
    """Drop, recreate and fill one relation"""
    started = time.perf_counter()

    await conn.run_sync(table.drop, checkfirst=True)
    await conn.run_sync(table.create)
    await conn.execute(
        insert(table).from_select([column.name for column in table.columns], query)
    )

    row_count = (
        await conn.execute(select(func.count()).select_from(table))
    ).scalar_one()

    result = DerivationResult(
        relation=table.name,
        row_count=row_count,
        duration_seconds=time.perf_counter() - started,
    )
    logger.info(
        "Derived relation rebuilt",
        relation=result.relation,
        rows=result.row_count,
        duration_seconds=round(result.duration_seconds, 4),
    )
    return result


async def derive_customers(conn: AsyncConnection) -> DerivationResult:
    """Rebuild ``customers``"""
    return await _rebuild(conn, customers, customers_query())


async def derive_products(conn: AsyncConnection) -> DerivationResult:
    """Rebuild ``products``; a stock code may keep several description/price rows"""
    return await _rebuild(conn, products, products_query())


async def derive_invoices(conn: AsyncConnection) -> DerivationResult:
    """Rebuild ``invoices``"""
    return await _rebuild(conn, invoices, invoices_query())


async def derive_invoice_items(conn: AsyncConnection) -> DerivationResult:
    """Rebuild ``invoice_items``"""
    return await _rebuild(conn, invoice_items, invoice_items_query())


async def derive_schema(conn: AsyncConnection) -> Dict[str, DerivationResult]:
    """
    Rebuild every derived relation.

    Args:
        conn: Connection inside an open transaction

    Returns:
        Dictionary of derivation results by relation name
    """
    logger.info("Deriving relational schema from raw store")
    results = {}

    for derive in (derive_customers, derive_products, derive_invoices, derive_invoice_items):
        result = await derive(conn)
        results[result.relation] = result

    logger.info(
        "Schema derivation complete",
        relations=len(results),
        total_rows=sum(r.row_count for r in results.values()),
    )
    return results
