from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def build_engine(database_url, echo=False):
    """
    Create the SQLAlchemy engine for DATABASE_URL.

    SQLite connections are shared across FastAPI's worker threads, and a pure
    in-memory database is pinned to one connection so every session sees it.
    """
    kwargs = {"echo": echo, "pool_pre_ping": True}

    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

    return create_engine(database_url, **kwargs)


def build_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db(engine):
    import app.models.heartbeat  # noqa: F401  registers the table on Base.metadata

    Base.metadata.create_all(bind=engine)
