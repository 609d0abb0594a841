"""Exception hierarchy for SQL Proxy.

Every exception carries an exit_code for the CLI and a status_code for
the HTTP layer. Only the message ever crosses the proxy boundary.
"""

from sql_proxy.core.exit_codes import ExitCode


class ProxyError(Exception):
    """Base exception for all SQL Proxy errors."""

    exit_code: int = ExitCode.GENERAL_ERROR
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(ProxyError):
    """Malformed query description: unknown action, missing data, unsafe identifier."""

    exit_code: int = ExitCode.VALIDATION_ERROR


class ExecutionError(ProxyError):
    """Driver, constraint or connection failure while running a statement."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class NetworkError(ExecutionError):
    """Connection failures, unreachable host."""

    exit_code: int = ExitCode.NETWORK_ERROR


class TimeoutError(NetworkError):
    """Statement timeout, connection timeout."""

    exit_code: int = ExitCode.TIMEOUT


class TransportError(ProxyError):
    """Malformed request body, wrong HTTP method, unreadable response."""

    exit_code: int = ExitCode.NETWORK_ERROR


class InputError(ProxyError):
    """File not found, unreadable query description."""

    exit_code: int = ExitCode.INPUT_ERROR


class ConfigError(ProxyError):
    """Malformed config, missing profile."""

    exit_code: int = ExitCode.CONFIG_ERROR
