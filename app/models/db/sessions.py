"""SQLAlchemy model for server-side browser sessions.

The cookie carries only the opaque ``id``; everything else, including the
CSRF token, stays server-side and is never client-writable.
"""
from __future__ import annotations
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from app.database import Base

class WebSession(Base):
    __tablename__ = "web_sessions"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    participant_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("participants.id"), nullable=True, index=True)
    csrf_token: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def is_logged_in(self) -> bool:
        return self.participant_id is not None
