"""Service exception hierarchy for the sandbox repair API.

Services raise these instead of bare ``ValueError`` so that the global
exception handler can map them to the correct HTTP status code without
fragile string matching.
"""


class AppError(Exception):
    """Base for all service exceptions."""

    def __init__(self, message: str = "An unexpected error occurred", *, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(AppError):
    """Unknown monitoring session or resource (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class BadRequestError(AppError):
    """Client sent an invalid request (400)."""

    def __init__(self, message: str = "Bad request"):
        super().__init__(message, status_code=400)


class ConflictError(AppError):
    """Request collides with the session's current state (409)."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)


def format_error_response(
    *,
    error: str,
    detail: object = None,
    request_id: str = "",
) -> dict:
    """Build a structured error response dict.

    Returns
    -------
    dict
        ``{"error": ..., "detail": ..., "request_id": ...}``
    """
    return {
        "error": error,
        "detail": detail if detail is not None else error,
        "request_id": request_id,
    }
