"""
Entity stores: the persistence boundary for users, tasks and documents.

Each store wraps a SQLAlchemy session and exposes create/get/find/update/
delete. Any database failure is rolled back and re-raised as InternalError.
"""
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.db import get_db
from app.errors import InternalError
from app.logger import get_logger
from app.models import Document, ROLE_CLIENT, Task, User

logger = get_logger(__name__)


class _Store:
    model: Any = None

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, action: str) -> Generator[None, None, None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{self.model.__name__} {action} failed: {e}")
            raise InternalError(detail=str(e)) from e

    def _query(self):
        return self.db.query(self.model)

    def get(self, entity_id: str):
        with self._guard("lookup"):
            return self._query().filter(self.model.id == entity_id).first()

    def create(self, **fields: Any):
        with self._guard("create"):
            entity = self.model(**fields)
            self.db.add(entity)
            self.db.commit()
            self.db.refresh(entity)
            return entity

    def update(self, entity, fields: Dict[str, Any]):
        with self._guard("update"):
            for key, value in fields.items():
                setattr(entity, key, value)
            self.db.commit()
            self.db.refresh(entity)
            return entity

    def delete(self, entity) -> None:
        with self._guard("delete"):
            self.db.delete(entity)
            self.db.commit()


class UserStore(_Store):
    model = User

    def get_by_email(self, email: str) -> Optional[User]:
        with self._guard("lookup"):
            return self._query().filter(User.email == email.lower()).first()

    def get_client(self, user_id: Optional[str]) -> Optional[User]:
        """Return the user only if it exists and has the client role."""
        if not user_id:
            return None
        user = self.get(user_id)
        if user is None or user.role != ROLE_CLIENT:
            return None
        return user

    def find_clients(self) -> List[User]:
        with self._guard("list"):
            return (
                self._query()
                .filter(User.role == ROLE_CLIENT)
                .order_by(User.created_at.desc())
                .all()
            )

    def delete_client(self, client: User) -> List[Tuple[str, str]]:
        """
        Delete a client with their tasks and documents in one transaction.

        Documents of other clients that still point at one of these tasks are
        detached from it. Returns the ``(storage_backend, file_url)`` pairs of
        the removed documents so their files can be cleaned up afterwards.
        """
        with self._guard("delete"):
            documents = self.db.query(Document).filter(Document.client_id == client.id).all()
            blobs = [(d.storage_backend, d.file_url) for d in documents]

            task_ids = select(Task.id).where(Task.client_id == client.id)
            self.db.query(Document).filter(Document.task_id.in_(task_ids)).update(
                {Document.task_id: None}, synchronize_session=False
            )
            self.db.query(Document).filter(Document.client_id == client.id).delete(
                synchronize_session=False
            )
            self.db.query(Task).filter(Task.client_id == client.id).delete(
                synchronize_session=False
            )
            self.db.query(User).filter(User.id == client.id).delete(
                synchronize_session=False
            )
            self.db.commit()
            return blobs


class TaskStore(_Store):
    model = Task

    def _query(self):
        return self.db.query(Task).options(
            joinedload(Task.client),
            joinedload(Task.created_by),
        )

    def find(self, client_id: Optional[str] = None) -> List[Task]:
        with self._guard("list"):
            query = self._query()
            if client_id is not None:
                query = query.filter(Task.client_id == client_id)
            return query.order_by(Task.created_at.desc()).all()

    def delete(self, entity: Task) -> None:
        with self._guard("delete"):
            # Documents outlive the task they were attached to.
            self.db.query(Document).filter(Document.task_id == entity.id).update(
                {Document.task_id: None}, synchronize_session=False
            )
            self.db.delete(entity)
            self.db.commit()


class DocumentStore(_Store):
    model = Document

    def _query(self):
        return self.db.query(Document).options(
            joinedload(Document.client),
            joinedload(Document.uploaded_by),
            joinedload(Document.task),
        )

    def find(self, client_id: Optional[str] = None) -> List[Document]:
        with self._guard("list"):
            query = self._query()
            if client_id is not None:
                query = query.filter(Document.client_id == client_id)
            return query.order_by(Document.created_at.desc()).all()


def get_user_store(db: Session = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_task_store(db: Session = Depends(get_db)) -> TaskStore:
    return TaskStore(db)


def get_document_store(db: Session = Depends(get_db)) -> DocumentStore:
    return DocumentStore(db)
