"""Error types shared by the query engine, the store and the HTTP/MCP surfaces."""

from typing import Optional


class CloudWatchInterfaceError(Exception):
    """Base class for all errors raised by this package."""


class InvalidRequest(CloudWatchInterfaceError, ValueError):
    """Caller-supplied query data failed validation. Never retried."""


class BackendProtocolError(CloudWatchInterfaceError):
    """The remote backend answered but broke its contract (e.g. no queryId)."""


class QueryTimeout(CloudWatchInterfaceError):
    """The poll attempt budget ran out before the query reached a terminal status."""

    def __init__(self, query_id: str, attempts: int):
        self.query_id = query_id
        self.attempts = attempts
        super().__init__(f'Query {query_id} did not complete after {attempts} attempts')


class StoreError(CloudWatchInterfaceError):
    """A Supabase request failed or returned no row where one was expected."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(CloudWatchInterfaceError):
    """An access token could not be resolved to a user."""


class ConfigurationError(CloudWatchInterfaceError):
    """A required environment variable is missing."""
