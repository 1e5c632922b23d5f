"""Standard API error envelope.

Every error leaving the API has the same shape::

    {
        "type": "validation_error" | "client_error" | "server_error",
        "errors": [{"code": "...", "detail": "...", "attr": "field" | null}],
    }

DRF raises framework errors (authentication, validation, 404) through
``standard_exception_handler``; views translate domain exceptions with
``error_response`` so both paths render identically.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import status as http_status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = structlog.get_logger(__name__)


def standard_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    detail = getattr(exc, "detail", response.data)
    response.data = {
        "type": _error_type(exc, response.status_code),
        "errors": _flatten(detail),
    }
    return response


def error_response(
    status_code: int,
    code: str,
    detail: str,
    attr: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> Response:
    """Render a domain failure in the standard envelope.

    ``extra`` keys (e.g. ``shortfalls``) are attached at the top level.
    """
    body: Dict[str, Any] = {
        "type": "server_error" if status_code >= 500 else "client_error",
        "errors": [{"code": code, "detail": detail, "attr": attr}],
    }
    body.update(extra)
    logger.info("api.domain_error", code=code, status_code=status_code)
    return Response(body, status=status_code, headers=headers)


def _error_type(exc: Exception, status_code: int) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if status_code >= http_status.HTTP_500_INTERNAL_SERVER_ERROR:
        return "server_error"
    return "client_error"


def _flatten(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            if key in ("detail", "non_field_errors"):
                child_attr = attr
            else:
                child_attr = f"{attr}.{key}" if attr else str(key)
            errors.extend(_flatten(value, child_attr))
        return errors
    if isinstance(detail, list):
        errors = []
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                child_attr = f"{attr}.{index}" if attr else str(index)
                errors.extend(_flatten(value, child_attr))
            else:
                errors.extend(_flatten(value, attr))
        return errors
    return [
        {
            "code": getattr(detail, "code", None) or "error",
            "detail": str(detail),
            "attr": attr,
        }
    ]
