from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from messaging_core.core.errors import bad_request, conflict, not_found
from messaging_core.models import FriendRequest, Friendship, User
from messaging_core.services import user_service

logger = logging.getLogger(__name__)


def are_friends(db: Session, user_id: str, other_user_id: str) -> bool:
    return db.get(Friendship, {"user_id": user_id, "friend_id": other_user_id}) is not None


def list_friends(db: Session, user_id: str) -> list[User]:
    rows = db.scalars(
        select(User)
        .join(Friendship, Friendship.friend_id == User.id)
        .where(Friendship.user_id == user_id)
        .order_by(User.username.asc())
    ).all()
    logger.debug("Listed friends user_id=%s count=%s", user_id, len(rows))
    return list(rows)


def list_friend_requests(db: Session, user_id: str) -> list[User]:
    rows = db.scalars(
        select(User)
        .join(FriendRequest, FriendRequest.from_user_id == User.id)
        .where(FriendRequest.to_user_id == user_id, FriendRequest.status == "pending")
        .order_by(FriendRequest.created_at.asc())
    ).all()
    return list(rows)


def send_friend_request(db: Session, *, from_user_id: str, to_user_id: str) -> FriendRequest:
    if from_user_id == to_user_id:
        raise bad_request("invalid_target", "Cannot befriend yourself")
    user_service.get_user(db, to_user_id)
    if are_friends(db, from_user_id, to_user_id):
        raise conflict("already_friends", "Users are already friends")

    existing = db.scalar(
        select(FriendRequest).where(
            FriendRequest.from_user_id == from_user_id,
            FriendRequest.to_user_id == to_user_id,
        )
    )
    if existing is not None:
        if existing.status != "pending":
            existing.status = "pending"
            db.commit()
        logger.debug("Friend request already exists from=%s to=%s", from_user_id, to_user_id)
        return existing

    request = FriendRequest(from_user_id=from_user_id, to_user_id=to_user_id)
    db.add(request)
    db.commit()
    logger.info("Friend request sent from=%s to=%s", from_user_id, to_user_id)
    return request


def _pending_request(db: Session, *, from_user_id: str, to_user_id: str) -> FriendRequest:
    request = db.scalar(
        select(FriendRequest).where(
            FriendRequest.from_user_id == from_user_id,
            FriendRequest.to_user_id == to_user_id,
            FriendRequest.status == "pending",
        )
    )
    if request is None:
        raise not_found("friend_request_not_found", "Friend request not found")
    return request


def accept_friend_request(db: Session, *, user_id: str, from_user_id: str) -> None:
    request = _pending_request(db, from_user_id=from_user_id, to_user_id=user_id)
    request.status = "accepted"
    for left, right in ((user_id, from_user_id), (from_user_id, user_id)):
        if not are_friends(db, left, right):
            db.add(Friendship(user_id=left, friend_id=right))
    db.commit()
    logger.info("Friend request accepted user_id=%s from=%s", user_id, from_user_id)


def decline_friend_request(db: Session, *, user_id: str, from_user_id: str) -> None:
    request = _pending_request(db, from_user_id=from_user_id, to_user_id=user_id)
    request.status = "declined"
    db.commit()
    logger.info("Friend request declined user_id=%s from=%s", user_id, from_user_id)
