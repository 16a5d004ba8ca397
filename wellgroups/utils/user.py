# wellgroups/utils/user.py

from typing import Optional


def get_display_name(first_name: str = "", last_name: str = "", username: str = "", telegram_id: int = None) -> str:
    """
    Формирует отображаемое имя пользователя:
    1. Если есть first_name и last_name: склеивает через пробел.
    2. Если есть только first_name: его.
    3. Если нет имени: username.
    4. Если и username нет: Telegram ID.
    """
    name = " ".join(filter(None, [first_name, last_name]))
    if name.strip():
        return name.strip()
    if username:
        return username
    if telegram_id is not None:
        return str(telegram_id)
    return ""


def display_name_of(user) -> str:
    """Имя для системных сообщений чата; если пользователя нет в зеркале: 'User #id'."""
    if user is None:
        return "Someone"
    name: Optional[str] = getattr(user, "name", None)
    if name:
        return name
    return get_display_name(
        first_name=getattr(user, "first_name", None),
        last_name=getattr(user, "last_name", None),
        username=getattr(user, "username", None),
        telegram_id=getattr(user, "telegram_id", None),
    ) or f"User #{user.id}"
