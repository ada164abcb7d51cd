"""
Database Module
"""
from .connection import init_database, close_database, get_engine, get_connection
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "get_engine",
    "get_connection",
    "Base",
]
