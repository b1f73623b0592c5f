"""SQLAlchemy model for group participants (givers and recipients)."""
from __future__ import annotations
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

if TYPE_CHECKING:  # pragma: no cover
    from .groups import Group
from app.database import Base
from .enums import AssignmentState, EmailStatus

class Participant(Base):
    __tablename__ = "participants"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    group_id: Mapped[int] = mapped_column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # Set only by a successful draw; cleared when the draw is voided.
    recipient_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("participants.id"), nullable=True)

    verification_code: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    code_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    code_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    assignment_email_status: Mapped[EmailStatus] = mapped_column(
        Enum(EmailStatus), default=EmailStatus.PENDING, nullable=False
    )
    assignment_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    group: Mapped["Group"] = relationship("Group", back_populates="participants", foreign_keys=[group_id])
    recipient: Mapped["Participant | None"] = relationship("Participant", remote_side=[id], foreign_keys=[recipient_id])

    __table_args__ = (
        UniqueConstraint("group_id", "email", name="unique_participant_email_per_group"),
    )

    @property
    def assignment_state(self) -> AssignmentState:
        return AssignmentState.ASSIGNED if self.recipient_id is not None else AssignmentState.UNASSIGNED
