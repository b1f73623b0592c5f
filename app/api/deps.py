"""
Dependencies for database sessions, browser sessions, authentication and
request governance (CSRF + rate limiting).
"""
from typing import Any, Awaitable, Callable, Coroutine, Generator, Optional, Sequence
import hmac
from fastapi import Depends, HTTPException, status, Request, Response
from fastapi.routing import APIRoute
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app import config
from app.config import RATE_LIMIT_SETTINGS, SESSION_SETTINGS
from app.database import SessionLocal
from app.governance import (
    GovernanceRejected,
    RateLimitPolicy,
    RequestGovernor,
    body_field_key_generator,
    email_key_generator,
)
from app.models.db import Participant, WebSession
from app.services import sessions as session_service
from app.utils import get_logger

logger = get_logger(__name__)
webhook_security = HTTPBearer(auto_error=False)

# One governor per process; its in-memory store is shared by every request.
governor = RequestGovernor()


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except (HTTPException, GovernanceRejected):
        db.rollback()
        raise
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def session_cookie(request: Request) -> Optional[str]:
    return request.cookies.get(str(SESSION_SETTINGS["cookie_name"]))


def get_optional_session(request: Request, db: Session = Depends(get_db)) -> Optional[WebSession]:
    return session_service.load_session(db, session_cookie(request))


def get_web_session(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
) -> WebSession:
    """Load the caller's session, creating one (and its cookie) on first visit."""
    record = session_service.load_session(db, session_cookie(request))
    if record is None:
        record = session_service.create_session(db)
        session_service.set_session_cookie(response, record.id)
        logger.info("Browser session created")
    return record


def get_current_participant(
    record: Optional[WebSession] = Depends(get_optional_session),
    db: Session = Depends(get_db)
) -> Participant:
    """
    Resolve the signed-in participant.

    Raises:
        HTTPException: 401 if there is no session or it is not signed in
    """
    if record is None or record.participant_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    participant = db.get(Participant, record.participant_id)
    if participant is None:
        logger.warning("Session bound to a missing participant", participant_id=record.participant_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return participant


def _participant_key_generator(db: Session) -> Callable[[Request], Awaitable[Optional[str]]]:
    async def _key(request: Request) -> Optional[str]:
        record = session_service.load_session(db, session_cookie(request))
        if record is None or record.participant_id is None:
            return None
        return f"user:{record.participant_id}"
    return _key


def build_policy(name: str, db: Session) -> RateLimitPolicy:
    """Materialize a named entry of ``RATE_LIMIT_SETTINGS``."""
    settings = RATE_LIMIT_SETTINGS[name]
    key = settings.get("key", "ip")
    if key == "email":
        key_func = email_key_generator("email")
    elif key == "group":
        key_func = body_field_key_generator("groupId", "group")
    elif key == "participant":
        key_func = _participant_key_generator(db)
    else:
        key_func = None
    return RateLimitPolicy(
        max_requests=int(settings["limit"]),
        window_seconds=int(settings["window_seconds"]),
        key_func=key_func,
        name=name,
    )


async def _enforce_governance(request: Request, db: Session, policy_names: Sequence[str]) -> None:
    policies = [build_policy(name, db) for name in policy_names]
    rejection = await governor.evaluate(
        request,
        lambda: session_service.load_session(db, session_cookie(request)),
        policies,
    )
    request.state.governed = True
    if rejection is not None:
        logger.info(
            "Request rejected by governance",
            path=request.url.path,
            status_code=rejection.status_code,
            code=rejection.code,
            request_id=request.headers.get("X-Request-ID", "unknown"),
        )
        raise GovernanceRejected(rejection)


def governed(*policy_names: str):
    """
    Factory for a dependency that runs CSRF validation and then the named
    rate limit policies, in order. Raises ``GovernanceRejected`` on the first
    failing gate so the endpoint body never runs.

    On a ``GovernedRoute`` the gates already ran before the body was parsed
    and the dependency is a no-op.
    """
    async def governance_dependency(request: Request, db: Session = Depends(get_db)) -> None:
        if getattr(request.state, "governed", False):
            return
        await _enforce_governance(request, db, policy_names)

    governance_dependency.policy_names = policy_names  # type: ignore[attr-defined]
    return governance_dependency


class GovernedRoute(APIRoute):
    """
    Route that evaluates its ``governed(...)`` dependency ahead of request
    parsing, so a malformed body still meets CSRF and rate limits before a 422.
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        handler = super().get_route_handler()
        policy_names = next(
            (
                dep.dependency.policy_names
                for dep in self.dependencies
                if hasattr(dep.dependency, "policy_names")
            ),
            None,
        )
        if policy_names is None:
            return handler

        async def governed_handler(request: Request) -> Response:
            provider = request.app.dependency_overrides.get(get_db, get_db)
            sessions = provider()
            db = next(sessions)
            try:
                await _enforce_governance(request, db, policy_names)
            finally:
                sessions.close()
            return await handler(request)

        return governed_handler


def require_webhook_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(webhook_security)
) -> None:
    """Shared-secret bearer auth for inbound webhooks."""
    expected = config.WEBHOOK_SECRET
    if not expected:
        logger.error("Webhook received but WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Webhook not configured")
    provided = credentials.credentials if credentials is not None else ""
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Webhook authentication failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
