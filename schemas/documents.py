from datetime import datetime
from typing import Optional

from schemas.base import CamelModel
from schemas.tasks import UserRef


class TaskRef(CamelModel):
    id: str
    title: str


class DocumentOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    file_url: str
    storage_backend: str
    file_type: str
    mime_type: str
    size: int
    client: UserRef
    uploaded_by: UserRef
    task: Optional[TaskRef] = None
    created_at: Optional[datetime] = None


class DownloadUnavailable(CamelModel):
    message: str
    document: DocumentOut
