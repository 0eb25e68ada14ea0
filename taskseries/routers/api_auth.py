from __future__ import annotations

from fastapi import APIRouter, Depends

from ..auth import get_current_user_api
from ..schemas import UserOut


router = APIRouter()


@router.get("/me", response_model=UserOut)
def api_me(current_user=Depends(get_current_user_api)):
    return current_user
