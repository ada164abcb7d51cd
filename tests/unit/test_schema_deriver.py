"""
Unit Tests - Schema Deriver
"""
from sqlalchemy import select

from online_retail.database.models import (
    DERIVED_TABLES,
    customers,
    invoice_items,
    invoices,
    products,
)
from online_retail.transformation.schema_deriver import (
    derive_customers,
    derive_invoices,
    derive_schema,
)


async def _rows(conn, table):
    result = await conn.execute(select(table))
    return [tuple(row) for row in result.fetchall()]


class TestDeriveSchema:
    """Tests for the four derived relations"""

    async def test_derives_all_relations(self, conn, load_lines, sample_lines):
        """Every relation is rebuilt with the expected row count"""
        await load_lines(sample_lines)

        results = await derive_schema(conn)

        assert set(results) == {"customers", "products", "invoices", "invoice_items"}
        assert results["customers"].row_count == 3
        assert results["products"].row_count == 3
        assert results["invoices"].row_count == 4
        assert results["invoice_items"].row_count == 5

    async def test_customers_cast_and_exclude_guests(self, conn, load_lines, sample_lines):
        """17850.0 becomes 17850 and guest lines are left out"""
        await load_lines(sample_lines)
        await derive_customers(conn)

        rows = await _rows(conn, customers)

        assert rows == [
            (12583, "France"),
            (13047, "United Kingdom"),
            (17850, "United Kingdom"),
        ]

    async def test_guest_invoice_keeps_null_customer(self, conn, load_lines, sample_lines):
        """Guest orders stay in invoices with no customer reference"""
        await load_lines(sample_lines)
        await derive_invoices(conn)

        result = await conn.execute(
            select(invoices.c.customer_id).where(invoices.c.invoice_no == "536366")
        )

        assert result.scalars().all() == [None]

    async def test_products_keep_every_description_and_price(self, conn, load_lines, line):
        """A stock code seen with two prices yields two product rows"""
        await load_lines([
            line("536365", "85123A", "6", "2.55", "17850", "United Kingdom", description="WHITE HANGING HEART"),
            line("536366", "85123A", "6", "2.95", "17850", "United Kingdom", description="WHITE HANGING HEART"),
            line("536367", "85123A", "6", "2.55", "17850", "United Kingdom", description="CREAM HANGING HEART"),
            line("536368", "85123A", "6", "2.55", "17850", "United Kingdom", description="WHITE HANGING HEART"),
        ])
        await derive_schema(conn)

        rows = await _rows(conn, products)

        assert rows == [
            ("85123A", "CREAM HANGING HEART", 2.55),
            ("85123A", "WHITE HANGING HEART", 2.55),
            ("85123A", "WHITE HANGING HEART", 2.95),
        ]

    async def test_invoice_items_one_row_per_line(self, conn, load_lines, sample_lines, line):
        """Items keep duplicates and drop lines without a stock code"""
        lines = sample_lines + [
            line("536365", "85123A", "2", "5.0", "17850", "United Kingdom"),
            line("536369", None, "1", "1.0", "17850", "United Kingdom"),
        ]
        await load_lines(lines)
        await derive_schema(conn)

        rows = await _rows(conn, invoice_items)

        assert len(rows) == 6
        assert rows[0] == ("536365", "85123A", 2, 5.0)
        assert all(stock_code is not None for _, stock_code, _, _ in rows)

    async def test_non_numeric_customer_id_is_treated_as_absent(self, conn, load_lines, line):
        """Cast failures drop the customer, not the run"""
        await load_lines([
            line("536365", "85123A", "1", "1.0", "abc", "United Kingdom"),
            line("536366", "85123A", "1", "1.0", "12a", "United Kingdom"),
            line("536367", "85123A", "1", "1.0", "17850", "United Kingdom"),
            line("536368", "85123A", "1", "1.0", "1.2.3", "United Kingdom"),
        ])
        await derive_schema(conn)

        assert await _rows(conn, customers) == [(17850, "United Kingdom")]

        result = await conn.execute(select(invoices.c.invoice_no, invoices.c.customer_id))
        assert sorted(result.fetchall()) == [
            ("536365", None),
            ("536366", None),
            ("536367", 17850),
            ("536368", None),
        ]

    async def test_rederivation_is_idempotent(self, conn, load_lines, sample_lines):
        """Running twice on unchanged input gives identical contents"""
        await load_lines(sample_lines)

        await derive_schema(conn)
        first = {table.name: await _rows(conn, table) for table in DERIVED_TABLES}

        await derive_schema(conn)
        second = {table.name: await _rows(conn, table) for table in DERIVED_TABLES}

        assert first == second

    async def test_invoice_customers_exist_in_customers(self, conn, load_lines, sample_lines, line):
        """Every non-null invoice customer has a customers row"""
        await load_lines(sample_lines + [line("536370", "22633", "1", "2.0", "bad-id", "Spain")])
        await derive_schema(conn)

        invoice_customers = set(
            (await conn.execute(
                select(invoices.c.customer_id).where(invoices.c.customer_id.is_not(None))
            )).scalars().all()
        )
        known_customers = set(
            (await conn.execute(select(customers.c.customer_id))).scalars().all()
        )

        assert invoice_customers
        assert invoice_customers <= known_customers
