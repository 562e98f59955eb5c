"""Search pipeline exceptions."""


class SearchError(Exception):
    """Base class for search pipeline errors."""


class CatalogUnavailableError(SearchError):
    """Raised when the catalog store cannot be queried."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause

        message = f"Catalog store unavailable during '{operation}'"
        if cause is not None:
            message += f": {cause}"

        super().__init__(message)


class SearchUnavailableError(SearchError):
    """Raised when a search cannot be served.

    This is the one user-visible failure of the pipeline: callers must
    render it as an error state, never as an empty result page.
    """

    def __init__(self, message: str = "Search service temporarily unavailable. Please try again.", cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)
