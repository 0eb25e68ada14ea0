from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user_api
from ..crud import create_tag, delete_tag, get_tag, list_tags, update_tag
from ..db import get_db
from ..schemas import MessageOut, TagCreate, TagOut, TagUpdate
from .errors import http_errors


router = APIRouter()


@router.get("/", response_model=list[TagOut])
def api_list_tags(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    return list_tags(db, current_user=current_user)


@router.post("/", response_model=TagOut)
def api_create_tag(
    payload: TagCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return create_tag(db, current_user=current_user, payload=payload)


@router.get("/{tag_id}", response_model=TagOut)
def api_get_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return get_tag(db, current_user=current_user, tag_id=tag_id)


@router.put("/{tag_id}", response_model=TagOut)
def api_update_tag(
    tag_id: int,
    payload: TagUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        return update_tag(db, current_user=current_user, tag_id=tag_id, payload=payload)


@router.delete("/{tag_id}", response_model=MessageOut)
def api_delete_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user_api),
):
    with http_errors():
        delete_tag(db, current_user=current_user, tag_id=tag_id)
    return MessageOut(message="Tag deleted", deleted_count=1)
