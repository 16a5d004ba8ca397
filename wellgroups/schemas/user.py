# wellgroups/schemas/user.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TelegramAuthIn(BaseModel):
    init_data: str = Field(..., alias="initData", min_length=1, description="Telegram.WebApp.initData как есть")


class UserOut(BaseModel):
    id: int
    telegram_id: int
    username: Optional[str] = None
    name: Optional[str] = Field(None, description="Имя, которое видят участники групп")
    created_at: datetime

    class Config:
        from_attributes = True
