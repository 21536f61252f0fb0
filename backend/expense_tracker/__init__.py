"""
Expense Tracker backend: receipt ingestion and expense storage.
"""

__version__ = "1.0.0"
