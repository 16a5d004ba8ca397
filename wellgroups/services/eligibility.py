# wellgroups/services/eligibility.py
from __future__ import annotations

from datetime import datetime, timezone

from ..schemas.eligibility import (
    EligibilityCheck,
    EligibilityRequirements,
    SevenDayActivity,
    TrainingCompletion,
)
from .activity_signals import ActivitySignalSource

REQUIRED_ACTIVE_DAYS = 7
REQUIRED_TRAINING_MODULES = 8


def evaluate(user_id: int, signals: ActivitySignalSource) -> EligibilityCheck:
    """
    Допуск к созданию группы: 7 активных дней из 7 И 8 пройденных модулей.
    Вступать по коду может любой (can_join_group всегда True).
    Ничего не кэширует и не сохраняет: каждый вызов пересчитывается из источника.
    """
    days_active = signals.days_active_in_last_seven_days(user_id)
    modules = signals.modules_completed(user_id)

    activity = SevenDayActivity(met=days_active >= REQUIRED_ACTIVE_DAYS, days_active=days_active)
    training = TrainingCompletion(met=modules >= REQUIRED_TRAINING_MODULES, modules_completed=modules)

    return EligibilityCheck(
        user_id=user_id,
        can_create_group=activity.met and training.met,
        can_join_group=True,
        requirements=EligibilityRequirements(seven_day_activity=activity, training_completion=training),
        checked_at=datetime.now(timezone.utc),
    )
