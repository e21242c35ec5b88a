"""
SQLAlchemy models for the client portal.
Three tables: users (admins and clients), tasks and documents.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"

TASK_PENDING = "pending"
TASK_COMPLETED = "completed"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Model for portal users. Clients and admins share the table and are
    told apart by ``role``.
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)
    phone = Column(String(40), nullable=True)
    role = Column(String(20), nullable=False, default=ROLE_CLIENT, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    tasks = relationship(
        "Task",
        back_populates="client",
        foreign_keys="Task.client_id",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Task(Base):
    """
    Model for tasks assigned to a client by an admin.
    """
    __tablename__ = "tasks"

    id = Column(String(32), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    client_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    created_by_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default=TASK_PENDING)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    client = relationship("User", back_populates="tasks", foreign_keys=[client_id])
    created_by = relationship("User", foreign_keys=[created_by_id])

    __table_args__ = (
        Index('ix_tasks_client', 'client_id'),
        Index('ix_tasks_deadline', 'deadline'),
    )

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, client_id={self.client_id}, status={self.status})>"


class Document(Base):
    """
    Model for uploaded documents.

    ``file_url`` is interpreted by the storage backend named in
    ``storage_backend``.
    """
    __tablename__ = "documents"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    file_url = Column(String(1024), nullable=False)
    storage_backend = Column(String(20), nullable=False)
    file_type = Column(String(40), nullable=False, default="")
    mime_type = Column(String(255), nullable=False, default="application/octet-stream")
    size = Column(Integer, nullable=False, default=0)
    client_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    uploaded_by_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    task_id = Column(String(32), ForeignKey("tasks.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    client = relationship("User", foreign_keys=[client_id])
    uploaded_by = relationship("User", foreign_keys=[uploaded_by_id])
    task = relationship("Task", foreign_keys=[task_id])

    __table_args__ = (
        Index('ix_documents_client', 'client_id'),
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name={self.name}, backend={self.storage_backend})>"
