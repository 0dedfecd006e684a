from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from section_app.config import settings
from section_app.models import Base


def _is_sqlite() -> bool:
    return settings.SECTION_APP_DB_URL.startswith("sqlite")


def _engine_connect_args() -> dict:
    if _is_sqlite():
        return {"check_same_thread": False}
    return {}


engine: Engine = create_engine(
    settings.SECTION_APP_DB_URL,
    future=True,
    connect_args=_engine_connect_args(),
)

if _is_sqlite():

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def get_session():
    session: Session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
