# allocation_engine/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from allocation_engine.config import settings  # expects DATABASE_URL


def _connect_args(url: str) -> dict:
    # background runs save from executor threads
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    pool_pre_ping=True,
    future=True,
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
