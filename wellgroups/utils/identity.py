# wellgroups/utils/identity.py
"""
Кто делает запрос. Провайдер идентичности один: подписанный Telegram WebApp initData.

Ядро групп никого не аутентифицирует само. Оно получает отсюда User и дальше
работает только с user.id и отображаемым именем (для системных сообщений чата).
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
from telegram_webapp_auth.auth import TelegramAuthenticator, generate_secret_key

from wellgroups.db import get_db
from wellgroups.models.user import User
from wellgroups.utils.user import get_display_name

log = logging.getLogger(__name__)

TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
if not TELEGRAM_BOT_TOKEN:
    raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

authenticator = TelegramAuthenticator(generate_secret_key(TELEGRAM_BOT_TOKEN))


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=401, detail={"code": code, "message": message})


@dataclass(frozen=True)
class Identity:
    """Проверенная часть initData: ровно то, из чего складывается имя в чате."""
    telegram_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return get_display_name(
            first_name=self.first_name,
            last_name=self.last_name,
            username=self.username,
            telegram_id=self.telegram_id,
        )


def read_identity(init_data: Optional[str]) -> Identity:
    if not init_data:
        raise _unauthorized("init_data_required", "initData is required")
    try:
        result = authenticator.validate(init_data)
    except Exception as e:
        log.info("initData rejected: %s", e)
        raise _unauthorized("invalid_init_data", "initData signature is invalid or expired") from e

    tg_user = getattr(result, "user", None)
    if tg_user is None:
        raise _unauthorized("invalid_init_data", "initData carries no user")
    return Identity(
        telegram_id=tg_user.id,
        first_name=getattr(tg_user, "first_name", None),
        last_name=getattr(tg_user, "last_name", None),
        username=getattr(tg_user, "username", None),
    )


def sync_user(db: Session, identity: Identity, *, register: bool) -> User:
    """
    Зеркалит Identity в users. Незнакомый telegram_id регистрируется только
    при register=True (вход через /api/auth/telegram), иначе 401.
    Коммитит только если что-то поменялось.
    """
    user: Optional[User] = db.query(User).filter_by(telegram_id=identity.telegram_id).first()
    if user is None:
        if not register:
            raise _unauthorized("user_not_registered", "User is not registered")
        user = User(telegram_id=identity.telegram_id)
        db.add(user)
        log.info("Registered user telegram_id=%s", identity.telegram_id)

    fields = {
        "first_name": identity.first_name,
        "last_name": identity.last_name,
        "username": identity.username,
        "name": identity.display_name,
    }
    changed = [key for key, value in fields.items() if getattr(user, key) != value]
    for key in changed:
        setattr(user, key, fields[key])

    if user.id is None or changed:
        db.commit()
        db.refresh(user)
    return user


def get_current_user(
    x_telegram_initdata: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """Зависимость для всех ручек групп и чата: initData из заголовка x-telegram-initdata."""
    return sync_user(db, read_identity(x_telegram_initdata), register=False)
