from typing import Optional

from pydantic import Field, field_validator

from schemas.auth import normalize_email
from schemas.base import CamelModel


class ClientCreate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    email: str
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=40)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return normalize_email(value)


class ClientUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    email: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=40)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value is not None else None
