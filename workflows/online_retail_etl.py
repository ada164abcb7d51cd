"""
Prefect Workflow Orchestration - Online Retail Batch

Runs the online retail pipeline as a Prefect flow, one task per stage:
- Raw Store load
- Schema derivation
- Views and indexes
- Reports and export
"""

from pathlib import Path
from typing import Dict, Optional

from prefect import flow, task, get_run_logger

from online_retail.analytics.export import ReportExporter
from online_retail.analytics.reports import run_reports
from online_retail.analytics.views import create_views, drop_views
from online_retail.config import get_settings
from online_retail.database.connection import close_database, get_connection, init_database
from online_retail.database.indexes import create_indexes
from online_retail.ingestion.batch_loader import BatchFileConfig, create_batch_loader
from online_retail.transformation.schema_deriver import derive_schema

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_raw_store",
    description="Load the source file into the raw store",
)
async def load_raw_store(source_file: Optional[str] = None) -> dict:
    """Replace the raw store with the source file contents"""
    logger = get_run_logger()

    async with get_connection() as conn:
        await drop_views(conn)
    async with get_connection() as conn:
        result = await create_batch_loader().load(conn, BatchFileConfig.from_settings(source_file))

    logger.info(
        f"Raw store loaded: {result.rows_loaded} rows, {result.rows_rejected} rejected"
    )
    return result.model_dump()


@task(
    name="derive_relations",
    description="Rebuild customers, products, invoices and invoice items",
)
async def derive_relations() -> Dict[str, int]:
    """Rebuild every derived relation"""
    logger = get_run_logger()

    async with get_connection() as conn:
        results = await derive_schema(conn)

    row_counts = {name: r.row_count for name, r in results.items()}
    logger.info(f"Derived relations: {row_counts}")
    return row_counts


@task(
    name="create_views_and_indexes",
    description="Recreate reporting views and ensure indexes",
)
async def create_views_and_indexes() -> dict:
    """Create views, then indexes"""
    async with get_connection() as conn:
        view_names = await create_views(conn)
    async with get_connection() as conn:
        index_names = await create_indexes(conn)
    return {"views": view_names, "indexes": index_names}


@task(
    name="run_and_export_reports",
    description="Run the report catalogue and export every result",
)
async def run_and_export_reports(export: bool = True) -> Dict[str, str]:
    """Run reports; returns exported file paths (empty when export is off)"""
    logger = get_run_logger()

    async with get_connection() as conn:
        reports = await run_reports(conn, settings)

    if not export:
        logger.info(f"Computed {len(reports)} reports, export skipped")
        return {}

    files = ReportExporter().export_all(reports)
    logger.info(f"Exported {len(files)} reports to {Path(settings.data_lake.reports_path)}")
    return files


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="online_retail_batch",
    description="Load, derive, and report on the Online Retail dataset",
    retries=1,
    retry_delay_seconds=60,
)
async def online_retail_batch(
    source_file: Optional[str] = None,
    export: bool = True,
) -> dict:
    """
    Full batch run.

    Every stage drops and recreates what it owns, so a flow retry simply
    reruns the whole sequence.
    """
    logger = get_run_logger()
    logger.info("Starting online retail batch flow")

    await init_database()
    try:
        load = await load_raw_store(source_file)
        relations = await derive_relations()
        schema_objects = await create_views_and_indexes()
        exported = await run_and_export_reports(export)
    finally:
        await close_database()

    return {
        "load": load,
        "relations": relations,
        "schema_objects": schema_objects,
        "exported_files": exported,
        "status": "success",
    }


if __name__ == "__main__":
    import asyncio

    asyncio.run(online_retail_batch())
