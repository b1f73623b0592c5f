"""CSRF protection for state-changing requests.

Tokens are 256-bit random hex strings stored server-side in the session record
and echoed by the client in the ``X-CSRF-Token`` header. POST/PUT/PATCH/DELETE
requests must present the session's token; safe methods are never checked.
Webhook paths are exempt because they authenticate with a shared secret.

Failure policy is fail-closed: any unexpected error while validating (for
example the session store being unreachable) yields a 500 rejection instead of
letting the request through.
"""
from __future__ import annotations

import inspect
import secrets
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, Union

from starlette.requests import Request

from app.config import CSRF_SETTINGS
from app.governance.rejection import Rejection, csrf_error, csrf_failed
from app.utils import get_logger

logger = get_logger(__name__)

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class CSRFSession(Protocol):
    csrf_token: Optional[str]


SessionLoader = Callable[[], Union[Optional[CSRFSession], Awaitable[Optional[CSRFSession]]]]


def generate_csrf_token(num_bytes: Optional[int] = None) -> str:
    return secrets.token_hex(num_bytes or int(CSRF_SETTINGS["token_bytes"]))  # type: ignore[arg-type]


def tokens_match(session_token: Optional[str], request_token: Optional[str]) -> bool:
    """Constant-time comparison of the session token and the submitted one.

    A length mismatch returns before the byte loop; token length only reveals
    the entropy size, not content.
    """
    if not session_token or not request_token:
        return False
    expected = session_token.encode("utf-8")
    provided = request_token.encode("utf-8")
    if len(expected) != len(provided):
        return False
    result = 0
    for x, y in zip(expected, provided):
        result |= x ^ y
    return result == 0


def issue_csrf_token(session: Any, persist: Callable[[Any], None]) -> str:
    """Return the session's token, creating and persisting one on first use."""
    if not session.csrf_token:
        session.csrf_token = generate_csrf_token()
        persist(session)
        logger.info("CSRF token issued for session")
    return session.csrf_token


class CSRFValidator:
    def __init__(
        self,
        header_name: Optional[str] = None,
        exempt_prefixes: Optional[Iterable[str]] = None,
    ):
        self.header_name = header_name or str(CSRF_SETTINGS["header_name"])
        prefixes = exempt_prefixes if exempt_prefixes is not None else CSRF_SETTINGS["exempt_prefixes"]
        self.exempt_prefixes = tuple(prefixes)  # type: ignore[arg-type]

    def requires_check(self, request: Request) -> bool:
        if request.method.upper() not in STATE_CHANGING_METHODS:
            return False
        path = request.url.path
        return not any(path.startswith(prefix) for prefix in self.exempt_prefixes)

    def validate(self, request: Request, session: Optional[CSRFSession]) -> Optional[Rejection]:
        """Return None when the request may proceed, else a rejection."""
        if not self.requires_check(request):
            return None
        try:
            session_token = getattr(session, "csrf_token", None) if session is not None else None
            request_token = request.headers.get(self.header_name)
            if not tokens_match(session_token, request_token):
                logger.warning(
                    "CSRF validation failed",
                    path=request.url.path,
                    method=request.method,
                    has_session_token=bool(session_token),
                    has_request_token=bool(request_token),
                )
                return csrf_failed()
            return None
        except Exception as e:
            logger.error("CSRF validation error", error=str(e), path=request.url.path, exc_info=True)
            return csrf_error()

    async def validate_lazy(self, request: Request, load_session: SessionLoader) -> Optional[Rejection]:
        """Like ``validate`` but only loads the session when a check is needed."""
        if not self.requires_check(request):
            return None
        try:
            session = load_session()
            if inspect.isawaitable(session):
                session = await session
        except Exception as e:
            logger.error("CSRF session lookup failed", error=str(e), path=request.url.path, exc_info=True)
            return csrf_error()
        return self.validate(request, session)


__all__ = [
    "CSRFValidator",
    "generate_csrf_token",
    "tokens_match",
    "issue_csrf_token",
    "STATE_CHANGING_METHODS",
]
