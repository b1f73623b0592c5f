"""Structured rejections produced by the governance layer.

Governance responses are wire contracts: the JSON body is emitted verbatim
(no ``success``/``message`` envelope) so clients can branch on ``code``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from fastapi.responses import JSONResponse

RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
CSRF_VALIDATION_FAILED = "CSRF_VALIDATION_FAILED"
CSRF_VALIDATION_ERROR = "CSRF_VALIDATION_ERROR"


@dataclass
class Rejection:
    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def code(self) -> str | None:
        return self.body.get("code")

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body, headers=self.headers or None)


class GovernanceRejected(Exception):
    """Raised from request dependencies to abort before business logic runs."""

    def __init__(self, rejection: Rejection):
        super().__init__(rejection.code)
        self.rejection = rejection


def csrf_failed() -> Rejection:
    return Rejection(403, {"error": "Invalid CSRF token", "code": CSRF_VALIDATION_FAILED})


def csrf_error() -> Rejection:
    return Rejection(500, {"error": "CSRF validation failed", "code": CSRF_VALIDATION_ERROR})


__all__ = [
    "Rejection",
    "GovernanceRejected",
    "csrf_failed",
    "csrf_error",
    "RATE_LIMIT_EXCEEDED",
    "CSRF_VALIDATION_FAILED",
    "CSRF_VALIDATION_ERROR",
]
