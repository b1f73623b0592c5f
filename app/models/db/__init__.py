from .groups import Group
from .participants import Participant
from .sessions import WebSession
from .invitations import Invitation
from .enums import EmailStatus, AssignmentState, Locale

__all__ = [
    "Group",
    "Participant",
    "WebSession",
    "Invitation",
    "EmailStatus",
    "AssignmentState",
    "Locale",
]
