"""Utility helpers for standardized error responses."""
from typing import Any

from fastapi import HTTPException, status


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


def not_found(code: str, message: str) -> HTTPException:
    """Build a 404 ``HTTPException`` carrying the standard error payload."""

    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_response(code, message),
    )


def conflict(code: str, message: str, details: dict[str, Any] | None = None) -> HTTPException:
    """Build a 409 ``HTTPException`` carrying the standard error payload."""

    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=error_response(code, message, details),
    )
