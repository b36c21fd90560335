from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from messaging_core.api.deps import get_current_user
from messaging_core.core.errors import success_response
from messaging_core.db.session import get_db
from messaging_core.models import User
from messaging_core.schemas.users import UserPublic
from messaging_core.services import social_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/social", tags=["social"])


@router.get("/friends")
def list_friends(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = social_service.list_friends(db, current_user.id)
    return success_response([UserPublic.model_validate(row).model_dump(mode="json") for row in rows])


@router.get("/friend-requests")
def list_friend_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = social_service.list_friend_requests(db, current_user.id)
    return success_response([UserPublic.model_validate(row).model_dump(mode="json") for row in rows])


@router.post("/friend-requests/{user_id}")
def send_friend_request(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    logger.info("Friend request endpoint hit from=%s to=%s", current_user.id, user_id)
    social_service.send_friend_request(db, from_user_id=current_user.id, to_user_id=user_id)
    return success_response({"requested": True}, status_code=status.HTTP_201_CREATED)


@router.post("/friend-requests/{user_id}/accept")
def accept_friend_request(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    social_service.accept_friend_request(db, user_id=current_user.id, from_user_id=user_id)
    return success_response({"accepted": True})


@router.post("/friend-requests/{user_id}/decline")
def decline_friend_request(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    social_service.decline_friend_request(db, user_id=current_user.id, from_user_id=user_id)
    return success_response({"declined": True})
