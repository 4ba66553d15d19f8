# reporeader/db.py

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from reporeader.config import settings

# Bound lazily by configure_engine() so importing the models never needs a database.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()

_engine: Optional[Engine] = None


def configure_engine(database_url: Optional[str] = None, **engine_kwargs) -> Engine:
    """Create the engine for `database_url` (default: DATABASE_URL) and bind SessionLocal to it."""
    global _engine

    url = database_url or settings.database_url
    if not url:
        raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

    if url.startswith("sqlite"):
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        engine_kwargs.setdefault("pool_pre_ping", True)

    _engine = create_engine(url, **engine_kwargs)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return configure_engine()
    return _engine


def init_db(engine: Optional[Engine] = None) -> None:
    """Create the tables (and the pgvector extension on PostgreSQL)."""
    # Imported for its side effect of registering the tables on Base.metadata
    from reporeader import models  # noqa: F401

    engine = engine or get_engine()
    if engine.dialect.name == "postgresql":
        from sqlalchemy import text

        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
    Base.metadata.create_all(bind=engine)
