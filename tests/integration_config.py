"""Configuration for integration tests.

Override these values via environment variables to match your local database setup.

Example:
    export SQL_PROXY_TEST_PROFILE=local_tickets
    export SQL_PROXY_TEST_TABLE=proxy_it_tickets
"""

import os

# Profile name configured in ~/.config/sql-proxy/config.toml
TEST_PROFILE = os.environ.get("SQL_PROXY_TEST_PROFILE", "test_db")

# Scratch table created and dropped by the integration tests
TEST_TABLE = os.environ.get("SQL_PROXY_TEST_TABLE", "proxy_it_tickets")

# CLI profile arguments
PROFILE_ARGS = ["--profile", TEST_PROFILE]
