from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from nutriu.config import DATABASE_URL


def crea_engine(url: str = DATABASE_URL, echo: bool = False) -> Engine:
    # SQLite: la API atiende requests en un threadpool
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=echo, future=True, pool_pre_ping=True, connect_args=connect_args)


engine = crea_engine()

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


@contextmanager
def db_session(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Sesión transaccional: commit al salir, rollback y re-raise ante error."""
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
