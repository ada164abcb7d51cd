"""
Batch Data Loader

Loads the Online Retail export into the Raw Store.
Supports:
- CSV and Parquet input
- Source header mapping (InvoiceNo, StockCode, ...) to Raw Store columns
- Tolerant type coercion with a dead-letter file for rejected rows
- Chunked inserts
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import hashlib

import polars as pl
import structlog
from pydantic import BaseModel
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from online_retail.config import get_settings
from online_retail.database.models import RAW_COLUMNS, RAW_TABLE, raw_records

logger = structlog.get_logger(__name__)

# Header names used by the public Online Retail dataset
SOURCE_COLUMN_MAPPING: Dict[str, str] = {
    "InvoiceNo": "invoice_no",
    "StockCode": "stock_code",
    "Description": "description",
    "Quantity": "quantity",
    "InvoiceDate": "invoice_date",
    "UnitPrice": "unit_price",
    "CustomerID": "customer_id",
    "Country": "country",
}

# Columns whose values must coerce or the row is rejected
COERCED_COLUMNS = ["quantity", "unit_price", "invoice_date"]


class IngestionError(Exception):
    """Raised when the source file cannot be loaded at all"""


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    PARQUET = "parquet"


class LoadStatus(str, Enum):
    """Batch load status"""
    COMPLETED = "completed"
    PARTIAL = "partial"


@dataclass
class BatchFileConfig:
    """Configuration for batch file loading"""
    file_path: Union[str, Path]
    file_format: FileFormat = FileFormat.CSV
    column_mapping: Dict[str, str] = field(default_factory=lambda: dict(SOURCE_COLUMN_MAPPING))
    delimiter: str = ","
    encoding: str = "utf8-lossy"
    skip_rows: int = 0
    datetime_formats: List[str] = field(default_factory=lambda: ["%Y-%m-%d %H:%M:%S"])
    null_values: List[str] = field(default_factory=lambda: ["NULL", "null", "None", "NA", "N/A"])
    chunk_size: int = 5000

    @classmethod
    def from_settings(cls, file_path: Optional[Union[str, Path]] = None) -> "BatchFileConfig":
        """Build a config for the configured source file"""
        settings = get_settings()
        path = Path(file_path or settings.data_lake.source_file)
        file_format = FileFormat.PARQUET if path.suffix.lower() == ".parquet" else FileFormat.CSV
        return cls(
            file_path=path,
            file_format=file_format,
            delimiter=settings.data_lake.delimiter,
            encoding=settings.data_lake.encoding,
            datetime_formats=list(settings.data_lake.datetime_formats),
            chunk_size=settings.database.insert_chunk_size,
        )


class LoadResult(BaseModel):
    """Result of a batch load operation"""
    file_path: str
    target_table: str
    status: LoadStatus
    rows_read: int = 0
    rows_loaded: int = 0
    rows_rejected: int = 0
    dead_letter_file: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None


class BatchLoader:
    """
    Raw Store loader.

    The Raw Store is replaced wholesale on every load: the table is dropped,
    recreated and refilled from the file.

    Example:
        loader = BatchLoader()
        config = BatchFileConfig(file_path="data/raw/online_retail.csv")
        async with get_connection() as conn:
            result = await loader.load(conn, config)
    """

    def __init__(self, dead_letter_path: Optional[str] = None):
        settings = get_settings()
        self.dead_letter_path = Path(dead_letter_path or settings.data_lake.dead_letter_path)

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of the source file"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: BatchFileConfig) -> pl.DataFrame:
        """Read every CSV column as text; coercion happens later"""
        return pl.read_csv(
            config.file_path,
            separator=config.delimiter,
            encoding=config.encoding,
            skip_rows=config.skip_rows,
            null_values=config.null_values,
            infer_schema=False,
        )

    def _read_parquet(self, config: BatchFileConfig) -> pl.DataFrame:
        """Read Parquet file"""
        return pl.read_parquet(config.file_path)

    def _read_file(self, config: BatchFileConfig) -> pl.DataFrame:
        """Read file based on format"""
        readers = {
            FileFormat.CSV: self._read_csv,
            FileFormat.PARQUET: self._read_parquet,
        }
        reader = readers.get(config.file_format)
        if not reader:
            raise IngestionError(f"Unsupported file format: {config.file_format}")
        return reader(config)

    def _normalize_columns(self, df: pl.DataFrame, mapping: Dict[str, str]) -> pl.DataFrame:
        """Rename source headers and keep only Raw Store columns"""
        renames = {
            source: target
            for source, target in mapping.items()
            if source in df.columns and target not in df.columns
        }
        df = df.rename(renames)

        missing = [column for column in RAW_COLUMNS if column not in df.columns]
        if missing:
            raise IngestionError(f"Missing columns: {missing}")

        return df.select(RAW_COLUMNS)

    def _pick_date_format(self, dates: pl.Series, formats: List[str]) -> str:
        """
        Choose one datetime format for the whole column.

        The first format that parses every non-null value wins. When none
        does, the format parsing the most values is used and the remaining
        rows are rejected. An ambiguous day/month value is read the same
        way on every row.
        """
        present = dates.is_not_null().sum()
        best_format, best_count = formats[0], -1

        for fmt in formats:
            parsed = dates.str.strptime(pl.Datetime("us"), fmt, strict=False).is_not_null().sum()
            if parsed == present:
                return fmt
            if parsed > best_count:
                best_format, best_count = fmt, parsed

        logger.warning(
            "No datetime format parses every invoice date",
            chosen_format=best_format,
            parsed=best_count,
            present=present,
        )
        return best_format

    def _coerce_types(
        self,
        df: pl.DataFrame,
        config: BatchFileConfig,
    ) -> Tuple[pl.DataFrame, pl.DataFrame]:
        """
        Coerce text columns to Raw Store types.

        Returns:
            (accepted rows, rejected rows). A row is rejected when one of
            quantity, unit_price or invoice_date holds a value that does not
            coerce; blank values are nulls, not failures.
        """
        text_columns = [
            column for column in RAW_COLUMNS
            if not df.schema[column].is_temporal()
        ]
        df = df.with_columns([
            pl.col(column).cast(pl.Utf8).str.strip_chars().alias(column)
            for column in text_columns
        ])
        df = df.with_columns([
            pl.when(pl.col(column) == "")
            .then(pl.lit(None, dtype=pl.Utf8))
            .otherwise(pl.col(column))
            .alias(column)
            for column in text_columns
        ])

        if df.schema["invoice_date"].is_temporal():
            parsed_date = pl.col("invoice_date").cast(pl.Datetime("us"))
        else:
            date_format = self._pick_date_format(df["invoice_date"], config.datetime_formats)
            parsed_date = pl.col("invoice_date").str.strptime(pl.Datetime("us"), date_format, strict=False)

        quantity = pl.col("quantity").cast(pl.Float64, strict=False)

        coerced = df.with_columns([
            # Fractional quantities do not coerce
            pl.when(quantity == quantity.floor())
            .then(quantity.cast(pl.Int64, strict=False))
            .otherwise(pl.lit(None, dtype=pl.Int64))
            .alias("_quantity"),
            pl.col("unit_price").cast(pl.Float64, strict=False).alias("_unit_price"),
            parsed_date.alias("_invoice_date"),
        ])

        failed = pl.any_horizontal([
            pl.col(column).is_not_null() & pl.col(f"_{column}").is_null()
            for column in COERCED_COLUMNS
        ])

        rejected = coerced.filter(failed).select(RAW_COLUMNS)
        accepted = (
            coerced.filter(~failed)
            .drop(COERCED_COLUMNS)
            .rename({f"_{column}": column for column in COERCED_COLUMNS})
            .select(RAW_COLUMNS)
        )

        # Remove completely null rows
        accepted = accepted.filter(~pl.all_horizontal(pl.all().is_null()))

        return accepted, rejected

    def _write_to_dead_letter(
        self,
        df: pl.DataFrame,
        source_name: str,
        error: str,
    ) -> str:
        """Write rejected records to the dead letter directory"""
        self.dead_letter_path.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        dead_letter_file = self.dead_letter_path / f"{source_name}_{now.strftime('%Y%m%d_%H%M%S')}.parquet"

        df = df.with_columns([
            pl.lit(error).alias("_error_message"),
            pl.lit(now.replace(tzinfo=None)).alias("_failed_at"),
        ])

        df.write_parquet(dead_letter_file)
        logger.warning(
            "Written rejected records to dead letter queue",
            file=str(dead_letter_file),
            records=len(df),
        )
        return str(dead_letter_file)

    async def _replace_table(
        self,
        conn: AsyncConnection,
        df: pl.DataFrame,
        chunk_size: int,
    ) -> int:
        """Drop, recreate and refill the Raw Store"""
        await conn.run_sync(raw_records.drop, checkfirst=True)
        await conn.run_sync(raw_records.create)

        total_inserted = 0
        for chunk in df.iter_slices(n_rows=chunk_size):
            await conn.execute(insert(raw_records), chunk.to_dicts())
            total_inserted += len(chunk)

        return total_inserted

    async def load_frame(
        self,
        conn: AsyncConnection,
        df: pl.DataFrame,
        config: BatchFileConfig,
    ) -> LoadResult:
        """
        Load an in-memory frame into the Raw Store.

        Args:
            conn: Connection inside an open transaction
            df: Source rows, with source or Raw Store column names
            config: Mapping, formats and chunking options

        Returns:
            LoadResult: Result of the load operation
        """
        started_at = datetime.now(timezone.utc)
        source_name = Path(config.file_path).stem

        df = self._normalize_columns(df, config.column_mapping)
        rows_read = len(df)

        accepted, rejected = self._coerce_types(df, config)

        dead_letter_file = None
        if len(rejected) > 0:
            dead_letter_file = self._write_to_dead_letter(
                rejected,
                source_name,
                f"Type coercion failed for one of: {COERCED_COLUMNS}",
            )

        rows_loaded = await self._replace_table(conn, accepted, config.chunk_size)

        completed_at = datetime.now(timezone.utc)
        result = LoadResult(
            file_path=str(config.file_path),
            target_table=RAW_TABLE,
            status=LoadStatus.PARTIAL if len(rejected) else LoadStatus.COMPLETED,
            rows_read=rows_read,
            rows_loaded=rows_loaded,
            rows_rejected=len(rejected),
            dead_letter_file=dead_letter_file,
            started_at=started_at,
            completed_at=completed_at,
            load_duration_seconds=(completed_at - started_at).total_seconds(),
        )

        logger.info(
            "Batch load completed",
            target_table=RAW_TABLE,
            rows_read=rows_read,
            rows_loaded=rows_loaded,
            rows_rejected=result.rows_rejected,
            duration_seconds=result.load_duration_seconds,
        )

        return result

    async def load(self, conn: AsyncConnection, config: BatchFileConfig) -> LoadResult:
        """
        Load a batch file into the Raw Store.

        Args:
            conn: Connection inside an open transaction
            config: Batch file configuration

        Returns:
            LoadResult: Result of the load operation

        Raises:
            IngestionError: If the file is missing or lacks required columns
        """
        file_path = Path(config.file_path)

        logger.info(
            "Starting batch load",
            file=str(file_path),
            target_table=RAW_TABLE,
        )

        if not file_path.exists():
            raise IngestionError(f"File not found: {file_path}")

        file_hash = self._compute_file_hash(file_path)
        df = self._read_file(config)

        logger.info(f"Read {len(df)} rows from file")

        result = await self.load_frame(conn, df, config)
        result.file_hash = file_hash
        return result


def create_batch_loader() -> BatchLoader:
    """Create a configured BatchLoader instance"""
    return BatchLoader(dead_letter_path=get_settings().data_lake.dead_letter_path)
