from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.models import ROLE_ADMIN, ROLE_CLIENT
from app.stores import UserStore
from auth.jwt_handler import create_access_token
from auth.security import hash_password
from main import create_app


class FakeNotifier:
    """Records sends instead of calling the messaging API."""

    def __init__(self):
        self.calls: List[Tuple[Optional[str], str]] = []

    def send(self, phone, message):
        self.calls.append((phone, message))
        return None


class FakeS3Client:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = Body
        return {"ETag": "fake"}

    def delete_object(self, Bucket, Key):
        self.deleted.append(Key)
        self.objects.pop(Key, None)
        return {}


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        storage_backend="disk",
        jwt_secret="test-secret",
        notify_api_key="",
        app_env="test",
        s3_bucket="portal-test",
        s3_public_base_url="https://cdn.example.com",
    )


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def app(settings, notifier):
    application = create_app(settings, notifier=notifier)
    application.state.database.connect()
    yield application
    application.state.database.dispose()


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


def make_user(app, role: str, email: str, phone: Optional[str] = None,
              password: str = "secret123", name: Optional[str] = None) -> Dict[str, str]:
    with app.state.database.session() as db:
        user = UserStore(db).create(
            name=name or email.split("@")[0],
            email=email,
            password=hash_password(password),
            phone=phone,
            role=role,
        )
        user_id = user.id
    token = create_access_token({"sub": user_id, "role": role}, app.state.settings)
    return {"id": user_id, "token": token, "email": email}


def auth_header(user: Dict[str, str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {user['token']}"}


@pytest.fixture()
def admin(app):
    return make_user(app, ROLE_ADMIN, "admin@example.com", phone="+10000000000")


@pytest.fixture()
def alice(app):
    return make_user(app, ROLE_CLIENT, "alice@example.com", phone="+15550000001")


@pytest.fixture()
def bob(app):
    return make_user(app, ROLE_CLIENT, "bob@example.com", phone="+15550000002")
