"""
Pydantic schemas for email-code sign in.
"""
from pydantic import EmailStr, Field
from .base import CamelModel


class VerifyRequest(CamelModel):
    email: EmailStr
    code: str = Field(min_length=1, max_length=12)


class ResendCodeRequest(CamelModel):
    email: EmailStr


class VerifyResponse(CamelModel):
    success: bool = True
    participant_id: int
    group_id: int
