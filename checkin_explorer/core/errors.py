class QueryError(Exception):
    """Base class for failures of a single query."""


class InvalidArgument(QueryError, ValueError):
    """Malformed or out-of-range input, detected before the store is touched."""


class UpstreamUnavailable(QueryError):
    """The check-in store failed or timed out."""
