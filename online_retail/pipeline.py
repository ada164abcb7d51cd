"""
Batch Pipeline

Runs the whole sequence once, in dependency order:

1. Drop views (they read the relations about to be rebuilt)
2. Load the source file into the Raw Store
3. Derive customers, products, invoices and invoice items
4. Create views
5. Create indexes
6. Run the report catalogue and export the results

Each step runs in its own transaction. Any failure is fatal; rerunning the
pipeline is the recovery path since every step drops and recreates what it
owns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import polars as pl
import structlog

from online_retail.analytics.export import ReportExporter
from online_retail.analytics.reports import run_reports
from online_retail.analytics.views import create_views, drop_views
from online_retail.config import get_settings
from online_retail.database.connection import close_database, get_connection, init_database
from online_retail.database.indexes import create_indexes
from online_retail.ingestion.batch_loader import BatchFileConfig, LoadResult, create_batch_loader
from online_retail.transformation.schema_deriver import DerivationResult, derive_schema

logger = structlog.get_logger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run"""
    load: LoadResult
    derivations: Dict[str, DerivationResult]
    views: List[str]
    indexes: List[str]
    reports: Dict[str, pl.DataFrame]
    exported_files: Dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


async def run_pipeline(
    source_file: Optional[Union[str, Path]] = None,
    export: bool = True,
    database_url: Optional[str] = None,
) -> PipelineResult:
    """
    Run the full batch pipeline.

    Args:
        source_file: Source CSV or Parquet; defaults to the configured file
        export: Write every report to the reports directory
        database_url: Override the configured database URL

    Returns:
        PipelineResult with per-step results and the report frames
    """
    started_at = datetime.now(timezone.utc)
    settings = get_settings()
    config = BatchFileConfig.from_settings(source_file)

    logger.info("Starting online retail pipeline", source=str(config.file_path))

    await init_database(database_url)
    try:
        async with get_connection() as conn:
            await drop_views(conn)

        async with get_connection() as conn:
            load_result = await create_batch_loader().load(conn, config)

        async with get_connection() as conn:
            derivations = await derive_schema(conn)

        async with get_connection() as conn:
            created_views = await create_views(conn)

        async with get_connection() as conn:
            created_indexes = await create_indexes(conn)

        async with get_connection() as conn:
            reports = await run_reports(conn, settings)
    finally:
        await close_database()

    result = PipelineResult(
        load=load_result,
        derivations=derivations,
        views=created_views,
        indexes=created_indexes,
        reports=reports,
        started_at=started_at,
    )

    if export:
        result.exported_files = ReportExporter().export_all(reports)

    result.completed_at = datetime.now(timezone.utc)
    logger.info(
        "Pipeline complete",
        rows_loaded=load_result.rows_loaded,
        rows_rejected=load_result.rows_rejected,
        reports=len(reports),
        exported=len(result.exported_files),
        duration_seconds=result.duration_seconds,
    )
    return result
