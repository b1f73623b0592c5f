from .base import CamelModel, ResponseBase, CSRFTokenResponse
from .auth import VerifyRequest, ResendCodeRequest, VerifyResponse
from .groups import (
    GroupCreate,
    GroupJoin,
    GroupCreated,
    GroupRead,
    GroupUpdate,
    ParticipantRead,
    AssignmentRead,
    RemoveParticipant,
    SendInvitation,
)
from .lottery import LotteryRun, LotteryVoid, ResendAssignment, LotteryRunResult
from .webhooks import EmailEvent, EmailEventBatch

__all__ = [
    # Base
    "CamelModel",
    "ResponseBase",
    "CSRFTokenResponse",

    # Auth
    "VerifyRequest",
    "ResendCodeRequest",
    "VerifyResponse",

    # Groups
    "GroupCreate",
    "GroupJoin",
    "GroupCreated",
    "GroupRead",
    "ParticipantRead",
    "AssignmentRead",
    "GroupUpdate",
    "RemoveParticipant",
    "SendInvitation",

    # Lottery
    "LotteryRun",
    "LotteryVoid",
    "ResendAssignment",
    "LotteryRunResult",

    # Webhooks
    "EmailEvent",
    "EmailEventBatch",
]
