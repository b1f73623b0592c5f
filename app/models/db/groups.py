"""SQLAlchemy model for gift exchange groups."""
from __future__ import annotations
from datetime import date, datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Date, DateTime, Boolean
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

if TYPE_CHECKING:  # pragma: no cover
    from .participants import Participant
from app.database import Base

class Group(Base):
    __tablename__ = "groups"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    budget: Mapped[str] = mapped_column(String, nullable=False)
    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    place: Mapped[str] = mapped_column(String, nullable=False)
    owner_email: Mapped[str] = mapped_column(String, nullable=False, index=True)
    invite_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    is_drawn: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    drawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    participants: Mapped[list["Participant"]] = relationship(
        "Participant",
        back_populates="group",
        foreign_keys="Participant.group_id",
        order_by="Participant.id",
    )
