"""Custom business exception classes.

Each exception maps to a specific HTTP status code and error code
for consistent API error responses.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, error_code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(self.message)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource does not exist."""

    def __init__(self, resource: str, resource_id: int | str):
        super().__init__(
            message=f"{resource} with id {resource_id} not found",
            error_code="RESOURCE_NOT_FOUND",
            status_code=404,
        )


class ValidationError(AppError):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: dict | None = None):
        self.details = details or {}
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
        )


class UnsupportedFilterError(ValidationError):
    """Raised when a query variant is asked to apply a filter it cannot honour."""

    def __init__(self, query_name: str, filter_name: str):
        self.query_name = query_name
        self.filter_name = filter_name
        super().__init__(
            message=f"Filter '{filter_name}' is not supported by {query_name}",
            details={"query": query_name, "filter": filter_name},
        )
        self.error_code = "UNSUPPORTED_FILTER"


class RepositoryError(AppError):
    """Raised when the database rejects a read or write.

    The driver exception is chained as ``__cause__``.
    """

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            status_code=500,
        )
