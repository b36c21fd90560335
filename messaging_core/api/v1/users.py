from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from messaging_core.api.deps import get_current_user
from messaging_core.core.errors import success_response
from messaging_core.core.settings import get_settings
from messaging_core.db.session import get_db
from messaging_core.models import User
from messaging_core.schemas.users import UserPublic, UserSearchResult
from messaging_core.services import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return success_response(UserPublic.model_validate(current_user).model_dump(mode="json"))


@router.get("/search")
def search_users(
    query: str = Query(min_length=1, max_length=64),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = user_service.search_users(
        db,
        requester_id=current_user.id,
        query=query,
        limit=get_settings().user_search_limit,
    )
    result = UserSearchResult(users=[UserPublic.model_validate(row) for row in rows])
    return success_response(result.model_dump(mode="json"))
