# wellgroups/utils/invite_code.py
# Инвайт-коды групп: генерация, нормализация ввода, формат для показа.

from __future__ import annotations

import secrets
import string
from typing import Callable, Optional

ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
MAX_ATTEMPTS = 50


def generate_invite_code() -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(CODE_LENGTH))


def generate_unique_invite_code(
    is_taken: Callable[[str], bool],
    *,
    generator: Callable[[], str] = generate_invite_code,
    max_attempts: int = MAX_ATTEMPTS,
) -> str:
    """
    Генерирует коды, пока не найдётся свободный.
    Занятость проверяет вызывающий (БД, набор в памяти и т.п.).
    Если за max_attempts свободный не нашёлся: RuntimeError("invite_code_exhausted").
    """
    for _ in range(max_attempts):
        code = generator()
        if not is_taken(code):
            return code
    raise RuntimeError("invite_code_exhausted")


def normalize_invite_code(raw: Optional[str]) -> str:
    """Убираем пробелы и дефис, приводим к верхнему регистру: ' abc-123 ' -> 'ABC123'."""
    if not raw:
        return ""
    return "".join(ch for ch in raw.strip().upper() if ch not in "- ")


def is_valid_invite_code(code: str) -> bool:
    return len(code) == CODE_LENGTH and all(ch in ALPHABET for ch in code)


def format_invite_code(code: str) -> str:
    """Формат для показа: ABC123 -> ABC-123."""
    if len(code) != CODE_LENGTH:
        return code
    return f"{code[:3]}-{code[3:]}"
