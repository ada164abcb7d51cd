"""
Data Ingestion Module
"""
from .batch_loader import BatchLoader, BatchFileConfig, IngestionError, LoadResult

__all__ = [
    "BatchLoader",
    "BatchFileConfig",
    "IngestionError",
    "LoadResult",
]
