"""Central Enum definitions for core domain states.

These replace scattered string literals to ensure consistency across
DB models, schemas, and business logic.
"""
from __future__ import annotations
import enum


class EmailStatus(str, enum.Enum):
    """Delivery state of a participant's assignment email."""
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    BOUNCED = "bounced"
    FAILED = "failed"


class AssignmentState(str, enum.Enum):
    """unassigned -> assigned (draw) -> unassigned (void)."""
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"


class Locale(str, enum.Enum):
    EN = "en"
    PT = "pt"


__all__ = [
    "EmailStatus",
    "AssignmentState",
    "Locale",
]
