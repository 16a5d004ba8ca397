# wellgroups/db.py
# Инициализация SQLAlchemy: движок, сессии, Base и явные импорты моделей.

from __future__ import annotations

import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set!")


def make_engine(url: str):
    """
    Движок под конкретный URL. Для SQLite (локальный запуск, тесты) пул не настраиваем
    и разрешаем работу сессий из разных потоков.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(
        url,
        pool_size=20,
        max_overflow=20,
        pool_timeout=60,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

from wellgroups.models import (  # noqa: E402
    user,
    group,
    group_member,
    group_message,
    message_reaction,
    read_marker,
    event,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
