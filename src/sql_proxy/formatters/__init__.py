"""Output formatters for SQL Proxy."""

from sql_proxy.formatters.base import Formatter, FormatterRegistry, registry
from sql_proxy.formatters.csv import CSVFormatter
from sql_proxy.formatters.json import JSONFormatter
from sql_proxy.formatters.table import TableFormatter

__all__ = [
    "CSVFormatter",
    "Formatter",
    "FormatterRegistry",
    "JSONFormatter",
    "TableFormatter",
    "registry",
]
