from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import settings


def _normalized_database_url(raw_url: str) -> str:
    """
    DATABASE_URL normalisation:
    - postgres:// and driverless postgresql:// are rewritten to the psycopg3 dialect.
    - Anything else (SQLite etc.) is returned unchanged.
    """
    if not raw_url:
        return "sqlite:///./geosched.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


def build_engine(url: str) -> Engine:
    url = _normalized_database_url(url)
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    # In-memory SQLite: one shared connection so tables created by init_db stay visible
    use_static_pool = url.startswith("sqlite") and ":memory:" in url
    return create_engine(
        url,
        connect_args=connect_args,
        poolclass=StaticPool if use_static_pool else None,
    )


DATABASE_URL = _normalized_database_url(settings.database_url)
engine = build_engine(DATABASE_URL)


def utcnow() -> datetime:
    """Naive UTC; every timestamp column is stored this way."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    with Session(engine) as session:
        yield session


def init_db(bind: Engine | None = None) -> None:
    from app import models  # noqa: F401  registers every table on SQLModel.metadata

    bind = bind or engine
    SQLModel.metadata.create_all(bind)


def ping_db(bind: Engine | None = None) -> bool:
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
