"""
Analytics Module
"""
from .aggregator import DimensionError, revenue_by
from .export import ReportExporter
from .reports import run_reports
from .views import create_views, drop_views

__all__ = [
    "DimensionError",
    "revenue_by",
    "ReportExporter",
    "run_reports",
    "create_views",
    "drop_views",
]
