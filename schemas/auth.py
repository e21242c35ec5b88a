import re
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from schemas.base import CamelModel

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_RE.match(value):
        raise ValueError("Please provide a valid email")
    return value


class UserOut(CamelModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None


class RegisterRequest(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    email: str
    password: str = Field(min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=40)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)


class LoginRequest(CamelModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)


class AuthResponse(CamelModel):
    token: str
    user: UserOut


class Token(CamelModel):
    access_token: str
    token_type: str
