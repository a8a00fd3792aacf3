from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from . import config

Base = declarative_base()


def _normalize_database_url(url: str) -> str:
    """Hosted Postgres URLs come as ``postgres://`` without an SSL mode."""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if "sslmode=" not in url:
        url += ("&" if "?" in url else "?") + "sslmode=require"
    return url


def build_engine(database_url: Optional[str] = None, sqlite_url: str = config.SQLITE_URL) -> Engine:
    """Postgres when a database URL is configured, a local SQLite file otherwise."""
    if database_url:
        return create_engine(_normalize_database_url(database_url), pool_pre_ping=True)
    return create_engine(sqlite_url, connect_args={"check_same_thread": False})


engine = build_engine(config.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
