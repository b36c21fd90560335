from __future__ import annotations

import logging

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from messaging_core.core.errors import unauthorized
from messaging_core.core.settings import USER_ID_HEADER
from messaging_core.db.session import get_db
from messaging_core.models import User

logger = logging.getLogger(__name__)


def get_current_user(
    caller_id: str | None = Header(default=None, alias=USER_ID_HEADER),
    db: Session = Depends(get_db),
) -> User:
    if not caller_id or not caller_id.strip():
        logger.warning("Request without %s header", USER_ID_HEADER)
        raise unauthorized("Caller identity is missing")

    user = db.get(User, caller_id.strip())
    if user is None:
        logger.warning("Caller user_id=%s not found", caller_id)
        raise unauthorized("Caller was not found")

    logger.debug("Resolved current user user_id=%s", user.id)
    return user
