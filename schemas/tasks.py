from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from schemas.base import CamelModel

TaskStatus = Literal["pending", "in-progress", "completed"]


class UserRef(CamelModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class TaskCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    client_id: str = Field(min_length=1)
    deadline: datetime
    status: TaskStatus = "pending"


class TaskUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    client_id: Optional[str] = None
    deadline: Optional[datetime] = None
    status: Optional[TaskStatus] = None


class TaskOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    deadline: datetime
    client: UserRef
    created_by: UserRef
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
