"""
Raw Store Exploration

First-look profiling of the ingested data: size, missing values per column,
the most recent lines and the number of countries.
"""

import polars as pl
from sqlalchemy import Integer, String, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncConnection

from online_retail.database.connection import fetch_frame
from online_retail.database.models import RAW_COLUMNS, raw_records


async def count_raw_rows(conn: AsyncConnection) -> int:
    return (await conn.execute(select(func.count()).select_from(raw_records))).scalar_one()


async def missing_value_counts(conn: AsyncConnection) -> pl.DataFrame:
    """
    Count missing values per Raw Store column.

    Text columns count NULL and empty strings; numeric and timestamp
    columns count NULL only. Returns one row with a ``missing_<column>``
    field per column.
    """
    counts = []
    for name in RAW_COLUMNS:
        column = raw_records.c[name]
        if isinstance(column.type, String):
            missing = or_(column.is_(None), column == "")
        else:
            missing = column.is_(None)
        counts.append(
            func.coalesce(func.sum(case((missing, 1), else_=0)), 0)
            .cast(Integer)
            .label(f"missing_{name}")
        )
    return await fetch_frame(conn, select(*counts))


async def latest_raw_records(conn: AsyncConnection, limit: int = 10) -> pl.DataFrame:
    """Most recent lines by invoice date"""
    stmt = (
        select(*[raw_records.c[name] for name in RAW_COLUMNS])
        .order_by(raw_records.c.invoice_date.desc(), raw_records.c.row_id)
        .limit(limit)
    )
    return await fetch_frame(conn, stmt)


async def count_distinct_countries(conn: AsyncConnection) -> int:
    stmt = select(func.count(func.distinct(raw_records.c.country)))
    return (await conn.execute(stmt)).scalar_one()
