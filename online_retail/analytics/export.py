"""
Report Export

Writes query results to the reports directory as CSV, JSON row records or
Parquet.
"""

from pathlib import Path
from typing import Dict, Optional

import polars as pl
import structlog

from online_retail.config import get_settings

logger = structlog.get_logger(__name__)


class ReportExporter:
    """
    Writes named result sets to disk.

    Example:
        exporter = ReportExporter(export_format="csv")
        exporter.export("revenue_by_country", frame)
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        export_format: Optional[str] = None,
    ):
        settings = get_settings()
        self.output_path = Path(output_path or settings.data_lake.reports_path)
        self.export_format = (export_format or settings.reports.export_format).lower()
        if self.export_format not in ("csv", "json", "parquet"):
            raise ValueError(f"Unsupported export format: {self.export_format}")

    def export(self, name: str, df: pl.DataFrame) -> str:
        """Write one result set and return its path"""
        self.output_path.mkdir(parents=True, exist_ok=True)
        output_file = self.output_path / f"{name}.{self.export_format}"

        if self.export_format == "csv":
            df.write_csv(output_file)
        elif self.export_format == "json":
            df.write_json(output_file)
        else:
            df.write_parquet(output_file)

        logger.info(f"Written {len(df)} rows to {output_file}")
        return str(output_file)

    def export_all(self, reports: Dict[str, pl.DataFrame]) -> Dict[str, str]:
        """Write every result set; returns paths by report name"""
        return {name: self.export(name, df) for name, df in reports.items()}
