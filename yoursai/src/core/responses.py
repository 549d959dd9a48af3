"""
YoursAI - Endpoint Responses
=============================
Transport-neutral result of an orchestrator call: status, JSON body and
headers.  The HTTP layer only serialises it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CORS_HEADERS: dict[str, str] = {"Access-Control-Allow-Origin": "*"}


@dataclass(frozen=True)
class EndpointResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))


def json_response(status_code: int, body: dict[str, Any]) -> EndpointResponse:
    return EndpointResponse(status_code=status_code, body=body)


def error_response(status_code: int, message: str) -> EndpointResponse:
    """Single-field ``{"error": ...}`` failure body."""
    return EndpointResponse(status_code=status_code, body={"error": message})
