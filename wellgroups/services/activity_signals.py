# wellgroups/services/activity_signals.py
# Источник сигналов активности/обучения для допуска к созданию групп.
# Сами шаги/модули считает внешний сервис; здесь: только клиент к нему.

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

import httpx

log = logging.getLogger(__name__)

MAX_DAYS_ACTIVE = 7
MAX_MODULES = 8


def _clamp(value, upper: int) -> int:
    try:
        v = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, min(upper, v))


class ActivitySignalSource:
    """Контракт источника: два счётчика на пользователя."""

    def days_active_in_last_seven_days(self, user_id: int) -> int:
        raise NotImplementedError

    def modules_completed(self, user_id: int) -> int:
        raise NotImplementedError


class HttpActivitySignals(ActivitySignalSource):
    """
    Ходит во внешний сервис активности:
      GET {base}/users/{id}/activity/days-active?window=7  -> {"days_active": int}
      GET {base}/users/{id}/training/modules-completed     -> {"modules_completed": int}
    Любая ошибка транспорта/HTTP: логируем и считаем 0 (пользователь просто не допущен).
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get_json(self, path: str, **params) -> dict:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = self._client.get(url, params=params or None, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, params=params or None)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"Activity service call failed ({url}): {e}")
            return {}

    def days_active_in_last_seven_days(self, user_id: int) -> int:
        data = self._get_json(f"/users/{user_id}/activity/days-active", window=MAX_DAYS_ACTIVE)
        return _clamp(data.get("days_active"), MAX_DAYS_ACTIVE)

    def modules_completed(self, user_id: int) -> int:
        data = self._get_json(f"/users/{user_id}/training/modules-completed")
        return _clamp(data.get("modules_completed"), MAX_MODULES)


class StaticActivitySignals(ActivitySignalSource):
    """Сигналы из памяти: локальный запуск без внешнего сервиса и тесты."""

    def __init__(self, days_active: Optional[Dict[int, int]] = None, modules: Optional[Dict[int, int]] = None):
        self.days_active = dict(days_active or {})
        self.modules = dict(modules or {})

    def set(self, user_id: int, *, days_active: int, modules: int) -> None:
        self.days_active[user_id] = days_active
        self.modules[user_id] = modules

    def days_active_in_last_seven_days(self, user_id: int) -> int:
        return _clamp(self.days_active.get(user_id, 0), MAX_DAYS_ACTIVE)

    def modules_completed(self, user_id: int) -> int:
        return _clamp(self.modules.get(user_id, 0), MAX_MODULES)


_default_source: Optional[ActivitySignalSource] = None


def get_signal_source() -> ActivitySignalSource:
    """
    FastAPI-зависимость. Если ACTIVITY_SERVICE_URL не задан: пустой StaticActivitySignals
    (никто не допущен к созданию групп), с предупреждением в лог.
    """
    global _default_source
    if _default_source is None:
        base_url = os.getenv("ACTIVITY_SERVICE_URL")
        if base_url:
            timeout = float(os.getenv("ACTIVITY_SERVICE_TIMEOUT", "5"))
            _default_source = HttpActivitySignals(base_url, timeout=timeout)
        else:
            log.warning("ACTIVITY_SERVICE_URL не задан: допуск к созданию групп будет закрыт для всех")
            _default_source = StaticActivitySignals()
    return _default_source
