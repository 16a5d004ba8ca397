# wellgroups/schemas/eligibility.py
from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class SevenDayActivity(BaseModel):
    met: bool
    days_active: int
    required_days: Literal[7] = 7


class TrainingCompletion(BaseModel):
    met: bool
    modules_completed: int
    required_modules: Literal[8] = 8


class EligibilityRequirements(BaseModel):
    seven_day_activity: SevenDayActivity
    training_completion: TrainingCompletion


class EligibilityCheck(BaseModel):
    """Вычисляемый допуск; нигде не хранится."""
    user_id: int
    can_create_group: bool
    can_join_group: bool
    requirements: EligibilityRequirements
    checked_at: datetime
