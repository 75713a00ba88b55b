"""Policy engine and rule configuration errors."""

from __future__ import annotations


class PolicyEngineError(RuntimeError):
    """Raised when a policy query cannot be evaluated."""

    def __init__(
        self, message: str, *, query: str = "", status_code: int | None = None
    ) -> None:
        """Initialise with a message, the query and optional HTTP status."""
        self.query = query
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, query: str, status_code: int) -> PolicyEngineError:
        """Return an error for a non-2xx response from the engine."""
        return cls(
            f"Policy query {query} failed with HTTP {status_code}",
            query=query,
            status_code=status_code,
        )

    @classmethod
    def transport_error(cls, query: str, reason: object) -> PolicyEngineError:
        """Return an error for a request that never produced a response."""
        return cls(f"Policy query {query} could not be sent: {reason}", query=query)

    @classmethod
    def missing_result(cls, query: str) -> PolicyEngineError:
        """Return an error for a response without a ``result`` member."""
        return cls(f"Policy query {query} returned no result", query=query)

    @classmethod
    def invalid_result(cls, query: str, reason: object) -> PolicyEngineError:
        """Return an error for a result that does not fit the expected type."""
        return cls(
            f"Policy query {query} returned an invalid result: {reason}", query=query
        )

    @classmethod
    def invalid_query(cls, query: str) -> PolicyEngineError:
        """Return an error for a query that is not a ``data.`` reference."""
        return cls(f"Policy query must start with 'data.': {query!r}", query=query)


class PolicyConfigError(RuntimeError):
    """Raised when the policy engine adapter is misconfigured."""

    @classmethod
    def missing_endpoint(cls) -> PolicyConfigError:
        """Return an error when no engine endpoint is configured."""
        return cls("PIPESCAN_OPA_URL is required to evaluate policies")


class ConfigError(ValueError):
    """Raised when a rule configuration file cannot be loaded."""

    def __init__(self, path: str, reason: str) -> None:
        """Initialise with the file path and failure reason."""
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration {path}: {reason}")
