"""
Unit Tests - Exploration, Reports and Export
"""
import polars as pl
import pytest

from online_retail.analytics.exploration import (
    count_distinct_countries,
    count_raw_rows,
    latest_raw_records,
    missing_value_counts,
)
from online_retail.analytics.export import ReportExporter
from online_retail.analytics.reports import report_catalogue, run_reports
from online_retail.analytics.views import create_views
from online_retail.database.indexes import create_indexes
from online_retail.transformation.schema_deriver import derive_schema


class TestExploration:
    """Tests for Raw Store profiling"""

    async def test_counts(self, conn, load_lines, sample_lines):
        await load_lines(sample_lines)

        assert await count_raw_rows(conn) == 5
        assert await count_distinct_countries(conn) == 2

    async def test_missing_value_counts(self, conn, load_lines, sample_lines, line):
        await load_lines(sample_lines + [line("536369", "22633", "1", "", None, "France")])

        row = (await missing_value_counts(conn)).to_dicts()[0]

        assert row["missing_customer_id"] == 2
        assert row["missing_unit_price"] == 1
        assert row["missing_invoice_no"] == 0
        assert set(row) == {
            "missing_invoice_no",
            "missing_stock_code",
            "missing_description",
            "missing_quantity",
            "missing_invoice_date",
            "missing_unit_price",
            "missing_customer_id",
            "missing_country",
        }

    async def test_missing_value_counts_on_empty_store(self, conn, load_lines):
        await load_lines([])

        row = (await missing_value_counts(conn)).to_dicts()[0]

        assert set(row.values()) == {0}

    async def test_latest_records_first(self, conn, load_lines, sample_lines):
        await load_lines(sample_lines)

        frame = await latest_raw_records(conn, limit=2)

        assert frame["invoice_no"].to_list() == ["536368", "536367"]
        assert "row_id" not in frame.columns


class TestReports:
    """Tests for the report catalogue"""

    def test_catalogue_names_are_unique(self):
        names = [name for name, _ in report_catalogue()]

        assert len(names) == len(set(names))
        assert names[0] == "raw_overview"
        assert "customer_lookup_plan" in names

    async def test_run_reports(self, conn, load_lines, sample_lines):
        await load_lines(sample_lines)
        await derive_schema(conn)
        await create_views(conn)
        await create_indexes(conn)

        reports = await run_reports(conn)

        assert list(reports) == [name for name, _ in report_catalogue()]
        assert reports["raw_overview"].to_dicts() == [{"total_rows": 5, "unique_countries": 2}]
        assert reports["customer_recent_invoices"]["invoice_no"].to_list() == ["536365"]
        assert reports["focus_country_revenue"].to_dicts() == [
            {"country": "United Kingdom", "total_revenue": 320.0}
        ]


class TestReportExporter:
    """Tests for writing result sets"""

    @pytest.fixture
    def frame(self):
        return pl.DataFrame({"country": ["United Kingdom", "France"], "total_revenue": [320.0, 56.0]})

    def test_export_csv(self, tmp_path, frame):
        exporter = ReportExporter(output_path=str(tmp_path), export_format="csv")

        path = exporter.export("revenue_by_country", frame)

        assert path.endswith("revenue_by_country.csv")
        assert pl.read_csv(path).to_dicts() == frame.to_dicts()

    def test_export_json(self, tmp_path, frame):
        exporter = ReportExporter(output_path=str(tmp_path), export_format="json")

        path = exporter.export("revenue_by_country", frame)

        assert pl.read_json(path).to_dicts() == frame.to_dicts()

    def test_export_parquet(self, tmp_path, frame):
        exporter = ReportExporter(output_path=str(tmp_path / "nested"), export_format="PARQUET")

        path = exporter.export("revenue_by_country", frame)

        assert pl.read_parquet(path).equals(frame)

    def test_export_all(self, tmp_path, frame):
        exporter = ReportExporter(output_path=str(tmp_path), export_format="csv")

        files = exporter.export_all({"a": frame, "b": frame.head(1)})

        assert set(files) == {"a", "b"}
        assert pl.read_csv(files["b"]).height == 1

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported export format"):
            ReportExporter(output_path=str(tmp_path), export_format="xml")
