from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from messaging_core.core.errors import not_found
from messaging_core.models import User

logger = logging.getLogger(__name__)


def serialize_user_public(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "profile_image": user.profile_image,
        "online": user.online,
    }


def serialize_user_embedded(user: User) -> dict[str, object]:
    # Shape used when a user is embedded in a message's from/to field.
    return {
        "_id": user.id,
        "username": user.username,
        "profile_image": user.profile_image,
    }


def get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        logger.warning("User lookup failed user_id=%s", user_id)
        raise not_found("user_not_found", "User not found")
    return user


def fetch_users_by_ids(db: Session, user_ids: Iterable[str]) -> dict[str, User]:
    normalized_ids = [user_id.strip() for user_id in user_ids if isinstance(user_id, str) and user_id.strip()]
    if not normalized_ids:
        return {}

    deduped_ids = list(dict.fromkeys(normalized_ids))
    rows = db.scalars(select(User).where(User.id.in_(deduped_ids))).all()
    logger.debug("Fetched users requested=%s returned=%s", len(deduped_ids), len(rows))
    return {row.id: row for row in rows}


def search_users(db: Session, *, requester_id: str, query: str, limit: int) -> list[User]:
    normalized_query = f"%{query.strip().lower()}%"
    rows = db.scalars(
        select(User)
        .where(
            User.id != requester_id,
            or_(
                func.lower(User.username).like(normalized_query),
                func.lower(func.coalesce(User.full_name, "")).like(normalized_query),
            ),
        )
        .order_by(User.username.asc())
        .limit(limit)
    ).all()
    logger.debug("User search requester_id=%s query=%s results=%s", requester_id, query, len(rows))
    return list(rows)


def set_online(db: Session, user_id: str, online: bool) -> None:
    user = db.get(User, user_id)
    if user is None:
        return
    if user.online != online:
        user.online = online
        db.commit()
        logger.info("Presence changed user_id=%s online=%s", user_id, online)
