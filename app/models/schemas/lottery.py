"""
Pydantic schemas for lottery operations.
"""
from typing import Optional
from pydantic import Field
from .base import CamelModel
from ..db.enums import Locale


class LotteryRun(CamelModel):
    group_id: int = Field(gt=0)


class LotteryVoid(CamelModel):
    group_id: int = Field(gt=0)


class ResendAssignment(CamelModel):
    group_id: int = Field(gt=0)
    participant_id: int = Field(gt=0)
    locale: Optional[Locale] = None


class LotteryRunResult(CamelModel):
    success: bool = True
    message: str
    participants_count: int
    emails_failed: int = 0
