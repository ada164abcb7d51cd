"""
Index Layer

Secondary indexes on the join and filter columns of the derived relations.
They only speed up reads: creating or dropping them never changes a query
result. Creation is idempotent (IF NOT EXISTS).

The indexes are declared here rather than on the Table objects so that the
schema deriver's drop-and-create leaves them out until this layer runs.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

import polars as pl
import structlog
from sqlalchemy import Table, inspect, select, text
from sqlalchemy.ext.asyncio import AsyncConnection

from online_retail.database.connection import fetch_frame
from online_retail.database.models import customers, invoice_items, invoices

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IndexSpec:
    """One single-column secondary index"""
    name: str
    table: Table
    column: str


INDEXES = [
    IndexSpec("idx_invoices_customer", invoices, "customer_id"),
    IndexSpec("idx_invoice_items_invoice", invoice_items, "invoice_no"),
    IndexSpec("idx_invoice_items_stock", invoice_items, "stock_code"),
    IndexSpec("idx_customers_country", customers, "country"),
]


async def create_indexes(conn: AsyncConnection) -> List[str]:
    """
    Create every index that does not exist yet.

    Returns:
        Names of the declared indexes
    """
    quote = conn.dialect.identifier_preparer.quote
    for spec in INDEXES:
        await conn.execute(text(
            f"CREATE INDEX IF NOT EXISTS {quote(spec.name)} "
            f"ON {quote(spec.table.name)} ({quote(spec.column)})"
        ))

    names = [spec.name for spec in INDEXES]
    logger.info("Indexes ensured", indexes=names)
    return names


async def drop_indexes(conn: AsyncConnection) -> None:
    """Drop every declared index if present"""
    quote = conn.dialect.identifier_preparer.quote
    for spec in INDEXES:
        await conn.execute(text(f"DROP INDEX IF EXISTS {quote(spec.name)}"))


async def list_indexes(conn: AsyncConnection, table_name: str) -> List[Dict[str, Any]]:
    """Indexes the engine reports for one table"""
    return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_indexes(table_name))


async def explain_customer_invoice_lookup(conn: AsyncConnection, customer_id: int) -> pl.DataFrame:
    """
    Query plan of the invoice/item lookup for one customer.

    Shows whether ``idx_invoices_customer`` and
    ``idx_invoice_items_invoice`` are picked up.
    """
    i, ii = invoices.c, invoice_items.c
    query = (
        select(i.invoice_no, i.invoice_date, ii.stock_code, ii.quantity, ii.unit_price)
        .select_from(invoices.join(invoice_items, i.invoice_no == ii.invoice_no))
        .where(i.customer_id == customer_id)
    )
    compiled = str(query.compile(dialect=conn.dialect, compile_kwargs={"literal_binds": True}))
    prefix = "EXPLAIN QUERY PLAN" if conn.dialect.name == "sqlite" else "EXPLAIN"

    return await fetch_frame(conn, text(f"{prefix} {compiled}"))
