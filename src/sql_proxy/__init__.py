"""SQL Proxy - declarative query proxy for PostgreSQL."""

from sql_proxy.__about__ import __version__

__all__ = ["__version__"]
