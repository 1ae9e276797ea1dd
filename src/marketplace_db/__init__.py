"""
marketplace_db - relational data-access layer for the marketplace.

Query building, record mapping, repositories with cache and audit
decorators, and an SQLite/MySQL connection manager.
"""

__version__ = "1.0.0"
