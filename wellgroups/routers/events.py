# wellgroups/routers/events.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from wellgroups.db import get_db
from wellgroups.models.user import User
from wellgroups.schemas.event import EventOut
from wellgroups.services import group_membership
from wellgroups.utils.identity import get_current_user

router = APIRouter(prefix="/events", tags=["События"])


@router.get("/", response_model=List[EventOut])
def list_events(
    group_id: int = Query(..., description="Журнал этой группы"),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Журнал событий группы (новые сверху). Виден только участникам."""
    return group_membership.group_events(db, group_id, current_user.id, limit=limit, offset=offset)
