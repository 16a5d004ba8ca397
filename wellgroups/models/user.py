# wellgroups/models/user.py
# Зеркало пользователя из Telegram. Группам нужны только id и отображаемое имя;
# first/last/username храним, чтобы пересобирать имя при следующем входе.

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, func

from wellgroups.db import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    telegram_id = Column(BigInteger, unique=True, nullable=False, index=True, comment="ID в Telegram")
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    username = Column(String, nullable=True)
    name = Column(String, nullable=True, comment="Имя в системных сообщениях и списке участников")
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    def __repr__(self):
        return f"<User {self.id} tg={self.telegram_id} {self.name!r}>"
