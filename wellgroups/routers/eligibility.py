# wellgroups/routers/eligibility.py
from fastapi import APIRouter, Depends

from wellgroups.models.user import User
from wellgroups.schemas.eligibility import EligibilityCheck
from wellgroups.services import eligibility
from wellgroups.services.activity_signals import ActivitySignalSource, get_signal_source
from wellgroups.utils.identity import get_current_user

router = APIRouter(prefix="/eligibility", tags=["Допуск"])


@router.get("/me", response_model=EligibilityCheck)
def my_eligibility(
    current_user: User = Depends(get_current_user),
    signals: ActivitySignalSource = Depends(get_signal_source),
):
    """Может ли текущий пользователь создать группу. Пересчитывается на каждый запрос."""
    return eligibility.evaluate(current_user.id, signals)
