# giftlist/db.py
# Инициализация SQLAlchemy: движок, сессии, Base и явные импорты моделей.

from __future__ import annotations

import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./giftlist.db")


def _engine_kwargs(url: str) -> dict:
    """
    SQLite (локальный запуск, тесты) не понимает параметры пула -
    для него отдельная конфигурация, in-memory база живёт в одном соединении.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "pool_size": 20,
        "max_overflow": 20,
        "pool_timeout": 60,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

from giftlist.models import (  # noqa: E402
    user,
    item,
    group,
    group_member,
    invitation,
    item_recipient,
    claim,
    notification,
    notification_outbox,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
