# wellgroups/services/atomic.py
# Одна команда = одна транзакция БД.

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .errors import Unavailable

log = logging.getLogger(__name__)

T = TypeVar("T")


def run_atomic(db: Session, op: Callable[[], T], *, retries: int = 1) -> T:
    """
    Выполняет op() и коммитит. Любая ошибка: rollback, частичных изменений не бывает.

    Транзиентные ошибки хранилища (OperationalError: lock timeout, "database is locked",
    обрыв соединения) повторяем retries раз, затем: Unavailable.
    Доменные ошибки (GroupFull, Forbidden, ...) не повторяем.
    """
    attempt = 0
    while True:
        try:
            result = op()
            db.commit()
            return result
        except OperationalError as e:
            db.rollback()
            if attempt >= retries:
                log.error("Storage unavailable after %s attempt(s): %s", attempt + 1, e)
                raise Unavailable() from e
            attempt += 1
            log.warning("Transient storage error, retrying (%s/%s): %s", attempt, retries, e)
        except Exception:
            db.rollback()
            raise
