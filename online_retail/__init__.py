"""
Online Retail SQL Analytics

Batch pipeline that loads the Online Retail order-line dataset into a
relational store, derives normalized tables and runs reporting queries.
"""

__version__ = "1.0.0"
