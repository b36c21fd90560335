from __future__ import annotations

from datetime import UTC, datetime
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from messaging_core.core.errors import not_found
from messaging_core.models import Message, MessageRequest, User
from messaging_core.models.message_request import ACCEPTED, DECLINED, PENDING
from messaging_core.services import social_service

logger = logging.getLogger(__name__)


def _recipient_started_conversation(db: Session, *, sender_id: str, recipient_id: str) -> bool:
    first = db.scalar(
        select(Message.id).where(Message.from_user_id == recipient_id, Message.to_user_id == sender_id).limit(1)
    )
    return first is not None


def register_outbound(db: Session, *, sender_id: str, recipient_id: str) -> bool:
    """Open a pending request for the recipient when the sender is a stranger.

    Returns True when a request entered the pending state. Does not commit.
    """
    if social_service.are_friends(db, sender_id, recipient_id):
        return False

    existing = db.get(MessageRequest, {"recipient_id": recipient_id, "sender_id": sender_id})
    if existing is not None and existing.status in (PENDING, ACCEPTED):
        return False
    if existing is None and _recipient_started_conversation(db, sender_id=sender_id, recipient_id=recipient_id):
        return False

    now = datetime.now(UTC)
    if existing is None:
        db.add(MessageRequest(recipient_id=recipient_id, sender_id=sender_id, status=PENDING, updated_at=now))
    else:
        existing.status = PENDING
        existing.updated_at = now
    logger.info("Message request opened sender_id=%s recipient_id=%s", sender_id, recipient_id)
    return True


def list_pending_senders(db: Session, recipient_id: str) -> list[User]:
    rows = db.scalars(
        select(User)
        .join(MessageRequest, MessageRequest.sender_id == User.id)
        .where(MessageRequest.recipient_id == recipient_id, MessageRequest.status == PENDING)
        .order_by(MessageRequest.updated_at.desc())
    ).all()
    return list(rows)


def _resolve(db: Session, *, recipient_id: str, sender_id: str, status: str) -> None:
    request = db.get(MessageRequest, {"recipient_id": recipient_id, "sender_id": sender_id})
    if request is None or request.status != PENDING:
        logger.warning(
            "No pending message request recipient_id=%s sender_id=%s",
            recipient_id,
            sender_id,
        )
        raise not_found("message_request_not_found", "Message request not found")
    request.status = status
    request.updated_at = datetime.now(UTC)
    db.commit()
    logger.info("Message request %s recipient_id=%s sender_id=%s", status, recipient_id, sender_id)


def accept(db: Session, *, recipient_id: str, sender_id: str) -> None:
    _resolve(db, recipient_id=recipient_id, sender_id=sender_id, status=ACCEPTED)


def decline(db: Session, *, recipient_id: str, sender_id: str) -> None:
    _resolve(db, recipient_id=recipient_id, sender_id=sender_id, status=DECLINED)
