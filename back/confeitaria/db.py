from collections.abc import Iterator

from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .settings import settings


def _build_engine():
    url = settings.database_url
    if url.startswith("sqlite"):
        # In-memory sqlite must share one connection across the threadpool
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = _build_engine()


def create_db_and_tables() -> None:
    # Import table modules so their metadata is registered
    from . import inventory_models, models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def check_db_connection() -> None:
    with Session(engine) as session:
        session.execute(text("SELECT 1"))


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session
