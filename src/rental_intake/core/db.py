from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from rental_intake.core.config import settings


def make_engine(database_url: str | None = None) -> Engine:
    url = database_url or settings.database_url
    connect_args: dict = {}
    if make_url(url).drivername.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)
