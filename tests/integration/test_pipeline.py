"""
Integration Tests - Batch Pipeline
"""
import logging
from pathlib import Path

import pytest

from online_retail.config import get_settings
from online_retail.ingestion.batch_loader import IngestionError
from online_retail.main import main
from online_retail.pipeline import run_pipeline


@pytest.fixture
def workspace(tmp_path, monkeypatch, sample_lines, frame_of):
    """Source file, database and output directories under tmp_path"""
    source = tmp_path / "raw" / "online_retail.csv"
    source.parent.mkdir()
    frame_of(sample_lines).write_csv(source)

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'db' / 'online_retail.db'}")
    monkeypatch.setenv("DATA_SOURCE_FILE", str(source))
    monkeypatch.setenv("DATA_REPORTS_PATH", str(tmp_path / "reports"))
    monkeypatch.setenv("DATA_DEAD_LETTER_PATH", str(tmp_path / "dead_letter"))
    get_settings.cache_clear()

    yield tmp_path

    get_settings.cache_clear()


class TestRunPipeline:
    """End-to-end runs against a file-backed SQLite database"""

    async def test_full_run(self, workspace):
        result = await run_pipeline()

        assert result.load.rows_loaded == 5
        assert result.derivations["invoices"].row_count == 4
        assert result.views == ["v_country_revenue", "v_invoice_details"]
        assert "idx_invoices_customer" in result.indexes
        assert result.reports["revenue_by_country"]["total_revenue"].to_list() == [320.0, 56.0]
        assert result.completed_at is not None

        assert set(result.exported_files) == set(result.reports)
        for path in result.exported_files.values():
            assert Path(path).parent == workspace / "reports"
            assert Path(path).exists()

    async def test_rerun_gives_same_reports(self, workspace):
        first = await run_pipeline(export=False)
        second = await run_pipeline(export=False)

        assert first.exported_files == second.exported_files == {}
        for name in ("revenue_by_country", "high_value_customers", "view_invoice_details"):
            assert first.reports[name].to_dicts() == second.reports[name].to_dicts()

    async def test_missing_source_file(self, workspace):
        with pytest.raises(IngestionError):
            await run_pipeline(source_file=workspace / "absent.csv", export=False)

        # The engine is released even when the run fails
        result = await run_pipeline(export=False)
        assert result.load.rows_loaded == 5


class TestCommandLine:
    """Tests for the console entry point"""

    @pytest.fixture(autouse=True)
    def restore_root_handlers(self):
        root_logger = logging.getLogger()
        handlers, level = root_logger.handlers[:], root_logger.level
        yield
        root_logger.handlers[:] = handlers
        root_logger.setLevel(level)

    def test_main_exports_reports(self, workspace, capsys):
        assert main(["--log-level", "WARNING"]) == 0

        output = capsys.readouterr().out
        assert "revenue_by_country:" in output

    def test_main_reports_ingestion_errors(self, workspace):
        assert main(["--source", str(workspace / "absent.csv"), "--no-export"]) == 1
