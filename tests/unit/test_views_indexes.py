"""
Unit Tests - Views and Indexes
"""
import pytest
from sqlalchemy import insert

from online_retail.analytics.aggregator import (
    high_value_customers,
    invoices_with_customers,
    revenue_summary,
)
from online_retail.analytics.views import (
    create_views,
    drop_views,
    read_country_revenue_view,
    read_invoice_details_view,
)
from online_retail.database.indexes import (
    INDEXES,
    create_indexes,
    drop_indexes,
    explain_customer_invoice_lookup,
    list_indexes,
)
from online_retail.database.models import raw_records
from online_retail.transformation.schema_deriver import derive_schema


@pytest.fixture
async def derived(conn, load_lines, sample_lines):
    await load_lines(sample_lines)
    await derive_schema(conn)
    await create_views(conn)
    return conn


class TestViews:
    """Tests for the reporting views"""

    async def test_create_views_returns_names(self, derived):
        assert await create_views(derived) == ["v_country_revenue", "v_invoice_details"]

    async def test_country_revenue_view(self, derived):
        frame = await read_country_revenue_view(derived)

        assert frame.to_dicts() == [
            {"country": "United Kingdom", "total_revenue": 320.0},
            {"country": "France", "total_revenue": 56.0},
        ]

    async def test_view_reflects_later_raw_changes(self, derived):
        """Views are computed on read, never stored"""
        await derived.execute(insert(raw_records), [{
            "invoice_no": "536400",
            "stock_code": "22633",
            "description": "ITEM 22633",
            "quantity": 5,
            "unit_price": 2.0,
            "customer_id": None,
            "country": "Germany",
        }])

        frame = await read_country_revenue_view(derived)

        assert {"country": "Germany", "total_revenue": 10.0} in frame.to_dicts()

    async def test_view_revenue_adds_up_to_total(self, derived):
        """Summing revenue per country gives the overall total"""
        per_country = await read_country_revenue_view(derived, limit=None)
        summary = await revenue_summary(derived)

        assert per_country["total_revenue"].sum() == pytest.approx(
            summary["total_revenue"][0]
        )

    async def test_invoice_details_keep_guest_invoices(self, derived):
        frame = await read_invoice_details_view(derived, limit=None)

        guest = frame.filter(frame["invoice_no"] == "536366").to_dicts()
        assert len(guest) == 1
        assert guest[0]["customer_id"] is None
        assert guest[0]["line_revenue"] == pytest.approx(6.0)

    async def test_invoice_details_columns(self, derived):
        frame = await read_invoice_details_view(derived, limit=1)

        assert frame.columns == [
            "invoice_no",
            "invoice_date",
            "customer_id",
            "country",
            "stock_code",
            "description",
            "quantity",
            "unit_price",
            "line_revenue",
        ]

    async def test_drop_views_is_idempotent(self, derived):
        await drop_views(derived)
        await drop_views(derived)

        assert await create_views(derived) == ["v_country_revenue", "v_invoice_details"]


class TestIndexes:
    """Tests for the index layer"""

    async def test_create_indexes_twice(self, derived):
        first = await create_indexes(derived)
        second = await create_indexes(derived)

        assert first == second == [spec.name for spec in INDEXES]

    async def test_indexes_visible_to_engine(self, derived):
        await create_indexes(derived)

        names = {index["name"] for index in await list_indexes(derived, "invoice_items")}

        assert {"idx_invoice_items_invoice", "idx_invoice_items_stock"} <= names

    async def test_drop_indexes(self, derived):
        await create_indexes(derived)
        await drop_indexes(derived)

        assert await list_indexes(derived, "invoices") == []

    async def test_indexes_do_not_change_results(self, derived):
        before = (
            (await invoices_with_customers(derived)).to_dicts(),
            (await high_value_customers(derived)).to_dicts(),
        )

        await create_indexes(derived)

        after = (
            (await invoices_with_customers(derived)).to_dicts(),
            (await high_value_customers(derived)).to_dicts(),
        )
        assert before == after

    async def test_explain_customer_lookup(self, derived):
        await create_indexes(derived)

        plan = await explain_customer_invoice_lookup(derived, 17850)

        assert len(plan) > 0
        assert "detail" in plan.columns
