"""Sentry integration for error tracking and performance monitoring.

Sentry is only initialized when a DSN is configured, either through
settings or the SQL_PROXY_SENTRY_DSN environment variable.
"""

from __future__ import annotations

import os

import sentry_sdk

from sql_proxy.__about__ import __version__

SENTRY_DSN_ENV = "SQL_PROXY_SENTRY_DSN"


def setup_sentry(dsn: str | None = None, environment: str = "local") -> bool:
    """Initialize Sentry. Returns False when no DSN is available."""
    dsn = dsn or os.environ.get(SENTRY_DSN_ENV)
    if not dsn:
        return False
    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=0.03,
        environment=environment,
        release=__version__,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    return True
