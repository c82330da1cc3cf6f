"""Consistent API response helpers.

Returns plain dicts (not Flask Response objects) because Flask-RESTX
handles JSON serialisation automatically.
"""

from app.domain.pager import Pager


def success_response(data, status_code: int = 200):
    """Return a standardised success dict with HTTP status code.

    Args:
        data: Serialisable payload.
        status_code: HTTP status code (default 200).
    """
    return {"status": "success", "data": data}, status_code


def page_payload(items: list, total: int, pager: Pager) -> dict:
    """Wrap one page of serialised rows with its total and paging echo."""
    return {
        "items": items,
        "total": total,
        "page": pager.page,
        "page_size": pager.page_size,
    }


def error_response(
    message: str,
    error_code: str = "INTERNAL_ERROR",
    status_code: int = 500,
    details=None,
):
    """Return a standardised error dict with HTTP status code."""
    body = {
        "status": "error",
        "error_code": error_code,
        "message": message,
    }
    if details:
        body["details"] = details
    return body, status_code
