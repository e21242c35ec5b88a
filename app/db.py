"""
Database engine, session management and connection readiness.

The ``Database`` handle is created once per application and stored on
``app.state.database``. It carries its own readiness state:

    cold -> connecting -> ready
                       -> degraded   (retried on the next request)

There is no background keep-alive; a connection attempt happens only when a
request arrives and the handle is not ready.
"""
import enum
import threading
from typing import Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from app.config import Settings
from app.errors import InternalError
from app.logger import get_logger

logger = get_logger(__name__)


class ConnectionState(str, enum.Enum):
    COLD = "cold"
    CONNECTING = "connecting"
    READY = "ready"
    DEGRADED = "degraded"


class DatabaseUnavailable(InternalError):
    default_message = "Database connection failed"


def build_engine(settings: Settings) -> Engine:
    """Create the SQLAlchemy engine for the configured URL."""
    url = settings.database_url

    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=0,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,  # Enable connection health checks
        connect_args={"connect_timeout": settings.db_connect_timeout},
    )


class Database:
    """Connection pool handle with demand-driven readiness tracking."""

    def __init__(
        self,
        settings: Settings,
        engine: Optional[Engine] = None,
        create_schema: bool = True,
    ):
        self.engine = engine or build_engine(settings)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )
        self.state = ConnectionState.COLD
        self.last_error: Optional[str] = None
        self.create_schema = create_schema
        self._schema_ready = False
        self._lock = threading.Lock()

        @event.listens_for(self.engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            if self.engine.dialect.name == "sqlite":
                # SQLite leaves foreign keys unenforced unless asked per connection.
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
            logger.debug("New database connection established")

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    def connect(self) -> bool:
        """
        Attempt to (re)establish connectivity.

        Returns True when the database answered, False otherwise. The handle
        ends in READY or DEGRADED accordingly.
        """
        with self._lock:
            if self.state is ConnectionState.READY:
                return True
            self.state = ConnectionState.CONNECTING
            try:
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                if self.create_schema and not self._schema_ready:
                    self.init_db()
                    self._schema_ready = True
            except SQLAlchemyError as e:
                self.state = ConnectionState.DEGRADED
                self.last_error = str(e)
                logger.error(f"Database connection failed: {e}")
                return False
            self.state = ConnectionState.READY
            self.last_error = None
            logger.info(f"Database connected: {self.engine.url.render_as_string(hide_password=True)}")
            return True

    def ensure_ready(self) -> None:
        """Connect if needed; raise DatabaseUnavailable when the attempt fails."""
        if self.is_ready:
            return
        if not self.connect():
            raise DatabaseUnavailable(detail=self.last_error)

    def init_db(self) -> None:
        """
        Initialize database tables.
        Runs once, on the first successful connection.
        """
        from app.models import Base

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created successfully.")

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()
        self.state = ConnectionState.COLD


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency for FastAPI to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()
