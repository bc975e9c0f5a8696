"""API error rendering.

Every error leaving the API has the same body shape::

    {"kind": "<ErrorKind>", "message": "<human readable>"}

Validation failures additionally carry ``errors`` with the per-field
details produced by DRF.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)

_MESSAGES = {
    "ValidationError": "Some fields are missing or invalid.",
    "ParseError": "The request body could not be parsed.",
    "NotAuthenticated": "Please sign in to continue.",
    "AuthenticationFailed": "Your session is invalid or has expired.",
    "PermissionDenied": "You are not allowed to perform this action.",
    "NotFound": "The requested resource was not found.",
    "MethodNotAllowed": "This method is not allowed here.",
    "Throttled": "Too many requests. Please try again shortly.",
}


def error_body(kind: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"kind": kind, "message": message, **extra}


def api_exception_handler(exc: Exception, context: dict) -> Optional[Response]:
    """DRF ``EXCEPTION_HANDLER`` producing ``{kind, message}`` bodies.

    Falls through (returns ``None``) for non-API exceptions so Django
    handles them as server errors.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.APIException):
        kind = type(exc).__name__
    else:
        # Http404 / django PermissionDenied are converted by DRF
        kind = "NotFound" if response.status_code == 404 else "PermissionDenied"

    message = _MESSAGES.get(kind, "The request could not be completed.")
    extra: dict[str, Any] = {}
    if isinstance(exc, exceptions.ValidationError):
        extra["errors"] = response.data

    logger.info("api.error", kind=kind, status_code=response.status_code)
    response.data = error_body(kind, message, **extra)
    return response
