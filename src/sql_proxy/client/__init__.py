"""Client-side query builder for the SQL Proxy endpoint."""

from sql_proxy.client.query import ProxyClient, QueryBuilder

__all__ = ["ProxyClient", "QueryBuilder"]
