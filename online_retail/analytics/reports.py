"""
Report Catalogue

The fixed sequence of reporting queries run at the end of every pipeline
execution, keyed by the name each result is exported under.
"""

from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import polars as pl
import structlog
from sqlalchemy.ext.asyncio import AsyncConnection

from online_retail.analytics import aggregator, exploration, views
from online_retail.config import Settings, get_settings
from online_retail.database.indexes import explain_customer_invoice_lookup

logger = structlog.get_logger(__name__)

ReportQuery = Callable[[AsyncConnection], Awaitable[pl.DataFrame]]


async def _raw_overview(conn: AsyncConnection) -> pl.DataFrame:
    return pl.DataFrame({
        "total_rows": [await exploration.count_raw_rows(conn)],
        "unique_countries": [await exploration.count_distinct_countries(conn)],
    })


def report_catalogue(settings: Optional[Settings] = None) -> List[Tuple[str, ReportQuery]]:
    """
    Build the ordered list of (name, query) pairs.

    Parameters such as the sample customer and the focus country come from
    the report settings.
    """
    settings = settings or get_settings()
    customer_id = settings.reports.sample_customer_id
    country = settings.reports.focus_country
    limit = settings.reports.default_limit

    return [
        # Exploration
        ("raw_overview", _raw_overview),
        ("missing_values", exploration.missing_value_counts),
        ("latest_invoice_lines", lambda conn: exploration.latest_raw_records(conn, limit=10)),
        # Filters and grouping
        ("customer_recent_invoices", lambda conn: aggregator.recent_invoices_for_customer(conn, customer_id, limit=limit)),
        ("revenue_by_country", aggregator.revenue_by_country),
        ("quantity_by_product", lambda conn: aggregator.quantity_by_product(conn, limit=limit)),
        ("focus_country_revenue", lambda conn: aggregator.country_revenue(conn, country)),
        # Joins
        ("invoices_with_customers", lambda conn: aggregator.invoices_with_customers(conn, limit=limit)),
        ("invoices_with_optional_customers", lambda conn: aggregator.invoices_with_optional_customers(conn, limit=limit)),
        ("customers_with_invoices", lambda conn: aggregator.customers_with_invoices(conn, limit=limit)),
        ("product_performance", lambda conn: aggregator.product_performance(conn, limit=15)),
        # Subqueries
        ("high_value_customers", lambda conn: aggregator.high_value_customers(conn, limit=limit)),
        ("top_countries", lambda conn: aggregator.top_countries(conn, limit=5)),
        ("revenue_summary", aggregator.revenue_summary),
        ("average_invoice_revenue", aggregator.average_invoice_revenue),
        # Views
        ("view_country_revenue", lambda conn: views.read_country_revenue_view(conn, limit=10)),
        ("view_invoice_details", lambda conn: views.read_invoice_details_view(conn, limit=limit)),
        # Index usage
        ("customer_lookup_plan", lambda conn: explain_customer_invoice_lookup(conn, customer_id)),
    ]


async def run_reports(
    conn: AsyncConnection,
    settings: Optional[Settings] = None,
) -> Dict[str, pl.DataFrame]:
    """Run every report in catalogue order"""
    results = {}
    for name, query in report_catalogue(settings):
        results[name] = await query(conn)
        logger.info("Report computed", report=name, rows=len(results[name]))
    return results
