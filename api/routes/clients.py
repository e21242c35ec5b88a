"""
Client management routes. Admin only.
"""
import secrets
from typing import List

from fastapi import APIRouter, Depends

from app.errors import BadRequest, NotFound
from app.logger import get_logger
from app.models import ROLE_CLIENT, User
from app.storage import StorageRegistry, get_storage
from app.stores import UserStore, get_user_store
from auth.permissions import require_admin
from auth.security import hash_password
from schemas.auth import UserOut
from schemas.clients import ClientCreate, ClientUpdate
from schemas.common import MessageResponse

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/clients",
    tags=["Clients"],
    dependencies=[Depends(require_admin)],
)


def _get_client_or_404(users: UserStore, client_id: str) -> User:
    client = users.get_client(client_id)
    if client is None:
        raise NotFound("Client not found")
    return client


@router.get("", response_model=List[UserOut])
def list_clients(users: UserStore = Depends(get_user_store)):
    return users.find_clients()


@router.get("/{client_id}", response_model=UserOut)
def get_client(client_id: str, users: UserStore = Depends(get_user_store)):
    return _get_client_or_404(users, client_id)


@router.post("", response_model=UserOut, status_code=201)
def create_client(body: ClientCreate, users: UserStore = Depends(get_user_store)):
    if users.get_by_email(body.email):
        raise BadRequest("Client already exists")

    # Without a password the account exists but cannot log in until one is set.
    password = body.password or secrets.token_urlsafe(24)
    client = users.create(
        name=body.name,
        email=body.email,
        password=hash_password(password),
        phone=body.phone,
        role=ROLE_CLIENT,
    )
    logger.info(f"Created client {client.email}")
    return client


@router.put("/{client_id}", response_model=UserOut)
def update_client(
    client_id: str,
    body: ClientUpdate,
    users: UserStore = Depends(get_user_store),
):
    client = _get_client_or_404(users, client_id)

    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes and changes["email"] != client.email:
        if users.get_by_email(changes["email"]):
            raise BadRequest("Email already in use")
    if "password" in changes:
        changes["password"] = hash_password(changes["password"])

    return users.update(client, changes)


@router.delete("/{client_id}", response_model=MessageResponse)
def delete_client(
    client_id: str,
    users: UserStore = Depends(get_user_store),
    storage: StorageRegistry = Depends(get_storage),
):
    client = _get_client_or_404(users, client_id)
    email = client.email

    blobs = users.delete_client(client)

    # Files go only once the records are committed.
    for backend_name, reference in blobs:
        backend = storage.for_record(backend_name)
        if backend is not None:
            backend.delete(reference)

    logger.info(f"Removed client {email} with {len(blobs)} document(s)")
    return {"message": "Client removed"}
