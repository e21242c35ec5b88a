"""
Document routes: upload, listing, download and removal.

Uploads go to the active storage backend; every record remembers which
backend stored it so downloads and deletes use the matching strategy.
"""
import mimetypes
import os
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse, Response

from app.errors import BadRequest, InternalError, NotFound, PayloadTooLarge
from app.logger import get_logger
from app.models import Document, User
from app.notifier import NotificationDispatcher, document_uploaded_message, get_notifier
from app.storage import Retrieval, StorageRegistry, get_storage
from app.stores import (
    DocumentStore,
    TaskStore,
    UserStore,
    get_document_store,
    get_task_store,
    get_user_store,
)
from auth.oauth2 import get_current_user
from auth.permissions import ensure_owner_or_admin
from schemas.common import MessageResponse
from schemas.documents import DocumentOut, DownloadUnavailable

logger = get_logger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])


def _get_document_or_404(documents: DocumentStore, document_id: str) -> Document:
    document = documents.get(document_id)
    if document is None:
        raise NotFound("Document not found")
    return document


def _format_size(num_bytes: int) -> str:
    mb = 1024 * 1024
    if num_bytes >= mb and num_bytes % mb == 0:
        return f"{num_bytes // mb}MB"
    return f"{num_bytes} bytes"


def _read_upload(file: UploadFile, limit: int) -> bytes:
    """Read the whole upload, refusing anything over ``limit`` bytes."""
    data = file.file.read(limit + 1)
    if len(data) > limit:
        raise PayloadTooLarge(f"File too large. Maximum size is {_format_size(limit)}")
    return data


def _download_filename(document: Document) -> str:
    name = document.name.replace('"', "")
    if document.file_type and not name.lower().endswith(f".{document.file_type.lower()}"):
        name = f"{name}.{document.file_type}"
    return name


@router.get("", response_model=List[DocumentOut])
def list_documents(
    user: User = Depends(get_current_user),
    documents: DocumentStore = Depends(get_document_store),
):
    if user.is_admin:
        return documents.find()
    return documents.find(client_id=user.id)


@router.get("/download/{document_id}")
def download_document(
    document_id: str,
    user: User = Depends(get_current_user),
    documents: DocumentStore = Depends(get_document_store),
    storage: StorageRegistry = Depends(get_storage),
):
    document = _get_document_or_404(documents, document_id)
    ensure_owner_or_admin(document.client_id, user, "Not authorized to download this document")

    backend = storage.for_record(document.storage_backend)
    retrieval = backend.retrieve(document.file_url) if backend is not None else Retrieval()

    if retrieval.supported:
        if retrieval.content is None:
            return RedirectResponse(retrieval.redirect_url, status_code=307)
        return Response(
            content=retrieval.content,
            media_type=document.mime_type,
            headers={"Content-Disposition": f'attachment; filename="{_download_filename(document)}"'},
        )

    unavailable = DownloadUnavailable(
        message=f"Document download is not available for '{document.storage_backend}' storage",
        document=DocumentOut.model_validate(document),
    )
    return JSONResponse(status_code=200, content=unavailable.model_dump(mode="json", by_alias=True))


@router.get("/{document_id}", response_model=DocumentOut)
def get_document(
    document_id: str,
    user: User = Depends(get_current_user),
    documents: DocumentStore = Depends(get_document_store),
):
    document = _get_document_or_404(documents, document_id)
    ensure_owner_or_admin(document.client_id, user, "Not authorized to access this document")
    return document


@router.post("", response_model=DocumentOut, status_code=201)
def upload_document(
    request: Request,
    background_tasks: BackgroundTasks,
    file: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    client_id: Optional[str] = Form(None, alias="clientId"),
    task_id: Optional[str] = Form(None, alias="taskId"),
    user: User = Depends(get_current_user),
    users: UserStore = Depends(get_user_store),
    tasks: TaskStore = Depends(get_task_store),
    documents: DocumentStore = Depends(get_document_store),
    storage: StorageRegistry = Depends(get_storage),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    if file is None or not file.filename:
        raise BadRequest("Please upload a file")

    if user.is_admin:
        if not client_id:
            raise BadRequest("Please specify a client")
        client = users.get_client(client_id)
        if client is None:
            raise NotFound("Client not found")
    else:
        client = user

    if task_id:
        task = tasks.get(task_id)
        if task is None or task.client_id != client.id:
            raise NotFound("Task not found")

    data = _read_upload(file, request.app.state.settings.max_upload_bytes)

    extension = os.path.splitext(file.filename)[1]
    mime_type = (
        file.content_type
        or mimetypes.guess_type(file.filename)[0]
        or "application/octet-stream"
    )

    backend = storage.active
    reference = backend.store(data, file.filename, mime_type)

    try:
        document = documents.create(
            name=name or file.filename,
            description=description,
            file_url=reference,
            storage_backend=backend.name,
            file_type=extension.lstrip(".").lower(),
            mime_type=mime_type,
            size=len(data),
            client_id=client.id,
            uploaded_by_id=user.id,
            task_id=task_id or None,
        )
    except InternalError:
        backend.delete(reference)
        raise
    logger.info(f"Document {document.id} stored via {backend.name} for {client.email}")

    if user.is_admin and client.id != user.id:
        background_tasks.add_task(
            notifier.send,
            client.phone,
            document_uploaded_message(document.name),
        )
    return document


@router.delete("/{document_id}", response_model=MessageResponse)
def delete_document(
    document_id: str,
    user: User = Depends(get_current_user),
    documents: DocumentStore = Depends(get_document_store),
    storage: StorageRegistry = Depends(get_storage),
):
    document = _get_document_or_404(documents, document_id)
    ensure_owner_or_admin(document.client_id, user, "Not authorized to delete this document")

    backend = storage.for_record(document.storage_backend)
    reference = document.file_url
    documents.delete(document)

    blob_removed = backend.delete(reference) if backend is not None else False

    if blob_removed:
        return {"message": "Document removed"}
    return {"message": "Document record removed"}
