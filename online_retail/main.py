"""
Command Line Entry Point

Usage:
    online-retail-etl
    online-retail-etl --source data/raw/online_retail.csv --no-export
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from online_retail.config.logging import configure_logging
from online_retail.ingestion.batch_loader import IngestionError
from online_retail.pipeline import run_pipeline

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="online-retail-etl",
        description="Load the Online Retail dataset, derive relations and run the reports",
    )
    parser.add_argument("--source", help="Source CSV or Parquet file (default: DATA_SOURCE_FILE)")
    parser.add_argument("--database-url", help="SQLAlchemy async URL (default: DATABASE_URL)")
    parser.add_argument("--no-export", action="store_true", help="Skip writing report files")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        result = asyncio.run(
            run_pipeline(
                source_file=args.source,
                export=not args.no_export,
                database_url=args.database_url,
            )
        )
    except IngestionError as e:
        logger.error("Pipeline aborted", error=str(e))
        return 1

    for name, path in result.exported_files.items():
        print(f"{name}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
