from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user_api
from ..crud import create_goal, delete_goal, get_goal, list_goals, update_goal
from ..db import get_db
from ..schemas import GoalCreate, GoalOut, GoalUpdate, MessageOut
from .errors import http_errors


router = APIRouter()


@router.get("/", response_model=list[GoalOut])
def api_list_goals(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    return list_goals(db, current_user=current_user)


@router.post("/", response_model=GoalOut)
def api_create_goal(
    payload: GoalCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return create_goal(db, current_user=current_user, payload=payload)


@router.get("/{goal_id}", response_model=GoalOut)
def api_get_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return get_goal(db, current_user=current_user, goal_id=goal_id)


@router.put("/{goal_id}", response_model=GoalOut)
def api_update_goal(
    goal_id: int,
    payload: GoalUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return update_goal(db, current_user=current_user, goal_id=goal_id, payload=payload)


@router.delete("/{goal_id}", response_model=MessageOut)
def api_delete_goal(
    goal_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        delete_goal(db, current_user=current_user, goal_id=goal_id)
    return MessageOut(message="Goal deleted", deleted_count=1)
