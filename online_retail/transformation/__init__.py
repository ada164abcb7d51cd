"""
Data Transformation Module
"""
from .schema_deriver import DerivationResult, derive_schema

__all__ = [
    "DerivationResult",
    "derive_schema",
]
