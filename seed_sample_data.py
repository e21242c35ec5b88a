import os
from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv

from app.config import get_settings
from app.db import Database
from app.models import ROLE_ADMIN, ROLE_CLIENT
from app.stores import TaskStore, UserStore
from auth.security import hash_password


def main() -> None:
    load_dotenv()
    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        raise RuntimeError("ADMIN_EMAIL and ADMIN_PASSWORD must be set")

    database = Database(get_settings())
    if not database.connect():
        raise RuntimeError(f"Database unavailable: {database.last_error}")

    with database.session() as db:
        users = UserStore(db)
        tasks = TaskStore(db)

        admin = users.get_by_email(admin_email.lower())
        if admin is None:
            admin = users.create(
                name=os.getenv("ADMIN_NAME", "Administrator"),
                email=admin_email.lower(),
                password=hash_password(admin_password),
                phone=os.getenv("ADMIN_PHONE"),
                role=ROLE_ADMIN,
            )
            print(f"Created admin {admin.email}")
        else:
            print(f"Admin {admin.email} already exists")

        if os.getenv("SEED_SAMPLE_CLIENT", "").lower() not in ("1", "true", "yes"):
            return

        client = users.get_by_email("sample.client@example.com")
        if client is None:
            client = users.create(
                name="Sample Client",
                email="sample.client@example.com",
                password=hash_password("client*123"),
                phone=None,
                role=ROLE_CLIENT,
            )
            tasks.create(
                title="Upload last quarter's invoices",
                description="Scan and upload all invoices from the previous quarter.",
                client_id=client.id,
                created_by_id=admin.id,
                deadline=datetime.now(timezone.utc) + timedelta(days=7),
            )
            print(f"Created sample client {client.email} with one task")


if __name__ == "__main__":
    main()
