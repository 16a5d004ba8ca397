# wellgroups/routers/auth.py
# Вход из мини-приложения: первый вход регистрирует пользователя в зеркале users,
# последующие только обновляют имя, которое видят участники групп.

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from wellgroups.db import get_db
from wellgroups.models.user import User
from wellgroups.schemas.user import TelegramAuthIn, UserOut
from wellgroups.utils.identity import read_identity, sync_user

router = APIRouter()


@router.post("/telegram", response_model=UserOut)
def auth_via_telegram(body: TelegramAuthIn, db: Session = Depends(get_db)) -> User:
    return sync_user(db, read_identity(body.init_data), register=True)
