"""
Test Suite Configuration
"""
from typing import Dict, List, Optional

import polars as pl
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from online_retail.database.models import Base
from online_retail.ingestion.batch_loader import (
    SOURCE_COLUMN_MAPPING,
    BatchFileConfig,
    BatchLoader,
)

SOURCE_SCHEMA = {header: pl.Utf8 for header in SOURCE_COLUMN_MAPPING}


def make_line(
    invoice_no: Optional[str],
    stock_code: Optional[str],
    quantity: str,
    unit_price: str,
    customer_id: Optional[str],
    country: Optional[str],
    invoice_date: str = "2010-12-01 08:26:00",
    description: Optional[str] = None,
) -> Dict[str, Optional[str]]:
    """One source line with the export's headers, every value as text"""
    return {
        "InvoiceNo": invoice_no,
        "StockCode": stock_code,
        "Description": description if description is not None else f"ITEM {stock_code}",
        "Quantity": quantity,
        "InvoiceDate": invoice_date,
        "UnitPrice": unit_price,
        "CustomerID": customer_id,
        "Country": country,
    }


def source_frame(lines: List[Dict[str, Optional[str]]]) -> pl.DataFrame:
    return pl.DataFrame(lines, schema=SOURCE_SCHEMA)


@pytest.fixture
def line():
    """Factory for source lines"""
    return make_line


@pytest.fixture
def frame_of():
    """Factory for source frames"""
    return source_frame


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine, one database per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'online_retail.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def conn(test_engine):
    """Connection inside a transaction committed at teardown"""
    async with test_engine.begin() as connection:
        yield connection


@pytest.fixture
def loader(tmp_path) -> BatchLoader:
    return BatchLoader(dead_letter_path=str(tmp_path / "dead_letter"))


@pytest.fixture
def load_lines(conn, loader, tmp_path):
    """Load source lines into the raw store of the test database"""
    async def _load(lines):
        config = BatchFileConfig(file_path=tmp_path / "fixture.csv")
        return await loader.load_frame(conn, source_frame(lines), config)

    return _load


@pytest.fixture
def sample_lines() -> List[Dict[str, Optional[str]]]:
    """
    Small dataset:
    - 536365: customer 17850 (UK), 2 x 5.0 + 1 x 10.0 = 20.0
    - 536366: guest order (France), 3 x 2.0 = 6.0
    - 536367: customer 12583 (France), 10 x 5.0 = 50.0
    - 536368: customer 13047 (UK), 30 x 10.0 = 300.0
    """
    return [
        make_line("536365", "85123A", "2", "5.0", "17850.0", "United Kingdom", "2010-12-01 08:26:00"),
        make_line("536365", "71053", "1", "10.0", "17850.0", "United Kingdom", "2010-12-01 08:26:00"),
        make_line("536366", "22633", "3", "2.0", None, "France", "2010-12-01 08:28:00"),
        make_line("536367", "85123A", "10", "5.0", "12583", "France", "2010-12-01 08:34:00"),
        make_line("536368", "71053", "30", "10.0", "13047", "United Kingdom", "2010-12-02 09:00:00"),
    ]
