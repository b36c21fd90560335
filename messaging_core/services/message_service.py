from __future__ import annotations

from datetime import UTC, datetime
import logging

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from messaging_core.core.errors import bad_request, forbidden, not_found
from messaging_core.models import Message, MessageReaction, User
from messaging_core.services import message_request_service, user_service

logger = logging.getLogger(__name__)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def serialize_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _as_aware(value).isoformat()


def serialize_message(
    message: Message,
    *,
    users_by_id: dict[str, User] | None = None,
) -> dict[str, object]:
    """Wire shape of a message.

    With ``users_by_id`` the ``from``/``to`` fields carry embedded user
    objects, otherwise bare ids.
    """
    sender: object = message.from_user_id
    recipient: object = message.to_user_id
    if users_by_id is not None:
        if message.from_user_id in users_by_id:
            sender = user_service.serialize_user_embedded(users_by_id[message.from_user_id])
        if message.to_user_id in users_by_id:
            recipient = user_service.serialize_user_embedded(users_by_id[message.to_user_id])
    return {
        "id": message.id,
        "from": sender,
        "to": recipient,
        "text": message.text,
        "created_at": serialize_datetime(message.created_at),
        "edited": message.edited,
        "reactions": [{"emoji": reaction.emoji, "by": reaction.user_id} for reaction in message.reactions],
    }


def _get_message(db: Session, message_id: str) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        logger.warning("Message not found message_id=%s", message_id)
        raise not_found("message_not_found", "Message not found")
    return message


def _require_owner(message: Message, user_id: str) -> None:
    if message.from_user_id != user_id:
        logger.warning("Message ownership check failed message_id=%s user_id=%s", message.id, user_id)
        raise forbidden("not_message_owner", "Not your message")


def list_history(db: Session, *, user_id: str, other_user_id: str) -> list[dict[str, object]]:
    """Conversation between two users, oldest first. Marks inbound messages as read."""
    user_service.get_user(db, other_user_id)
    result = db.execute(
        update(Message)
        .where(
            Message.from_user_id == other_user_id,
            Message.to_user_id == user_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True)
    )
    db.commit()
    logger.debug(
        "Marked messages read user_id=%s other_user_id=%s count=%s",
        user_id,
        other_user_id,
        result.rowcount,
    )

    rows = db.scalars(
        select(Message)
        .options(selectinload(Message.reactions))
        .where(
            or_(
                (Message.from_user_id == user_id) & (Message.to_user_id == other_user_id),
                (Message.from_user_id == other_user_id) & (Message.to_user_id == user_id),
            )
        )
        .order_by(Message.created_at.asc())
    ).all()
    users_by_id = user_service.fetch_users_by_ids(db, [user_id, other_user_id])
    return [serialize_message(row, users_by_id=users_by_id) for row in rows]


def send_message(db: Session, *, sender_id: str, recipient_id: str, text: str) -> dict[str, object]:
    logger.info("Send message attempt sender_id=%s recipient_id=%s", sender_id, recipient_id)
    if sender_id == recipient_id:
        raise bad_request("invalid_target", "Cannot message yourself")
    user_service.get_user(db, recipient_id)

    message_request_service.register_outbound(db, sender_id=sender_id, recipient_id=recipient_id)
    message = Message(from_user_id=sender_id, to_user_id=recipient_id, text=text)
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info("Message persisted message_id=%s sender_id=%s recipient_id=%s", message.id, sender_id, recipient_id)
    return serialize_message(message)


def edit_message(db: Session, *, user_id: str, message_id: str, text: str) -> dict[str, object]:
    message = _get_message(db, message_id)
    _require_owner(message, user_id)
    message.text = text
    message.edited = True
    db.commit()
    db.refresh(message)
    logger.info("Message edited message_id=%s user_id=%s", message_id, user_id)
    return serialize_message(message)


def delete_message(db: Session, *, user_id: str, message_id: str) -> None:
    message = _get_message(db, message_id)
    _require_owner(message, user_id)
    db.delete(message)
    db.commit()
    logger.info("Message deleted message_id=%s user_id=%s", message_id, user_id)


def react_to_message(db: Session, *, user_id: str, message_id: str, emoji: str) -> dict[str, object]:
    message = _get_message(db, message_id)
    if user_id not in (message.from_user_id, message.to_user_id):
        raise not_found("message_not_found", "Message not found")

    previous = [reaction for reaction in message.reactions if reaction.user_id == user_id]
    for reaction in previous:
        message.reactions.remove(reaction)
    db.flush()
    message.reactions.append(MessageReaction(user_id=user_id, emoji=emoji))
    db.commit()
    db.refresh(message)
    logger.info("Message reaction set message_id=%s user_id=%s emoji=%s", message_id, user_id, emoji)
    return serialize_message(message)


def list_chat_users(db: Session, user_id: str) -> list[dict[str, object]]:
    partner_id = case((Message.from_user_id == user_id, Message.to_user_id), else_=Message.from_user_id)
    rows = db.execute(
        select(partner_id.label("partner_id"), func.max(Message.created_at).label("last_message_at"))
        .where(or_(Message.from_user_id == user_id, Message.to_user_id == user_id))
        .group_by(partner_id)
    ).all()
    last_message_by_partner: dict[str, datetime | None] = {}
    for row in rows:
        if row.partner_id == user_id:
            continue
        last_message_at = row.last_message_at
        if isinstance(last_message_at, str):
            last_message_at = datetime.fromisoformat(last_message_at)
        last_message_by_partner[row.partner_id] = last_message_at
    users_by_id = user_service.fetch_users_by_ids(db, last_message_by_partner.keys())

    known = [(users_by_id[partner], at) for partner, at in last_message_by_partner.items() if partner in users_by_id]
    dated = sorted((pair for pair in known if pair[1] is not None), key=lambda pair: _as_aware(pair[1]), reverse=True)
    undated = [pair for pair in known if pair[1] is None]

    payload: list[dict[str, object]] = []
    for user, last_message_at in dated + undated:
        item = user_service.serialize_user_public(user)
        item["last_message_at"] = serialize_datetime(last_message_at)
        payload.append(item)
    logger.debug("Listed chat users user_id=%s count=%s", user_id, len(payload))
    return payload


def unread_counts(db: Session, user_id: str) -> dict[str, int]:
    rows = db.execute(
        select(Message.from_user_id, func.count(Message.id))
        .where(Message.to_user_id == user_id, Message.is_read.is_(False))
        .group_by(Message.from_user_id)
    ).all()
    return {sender_id: count for sender_id, count in rows}


def find_relayable_message(db: Session, *, message_id: str, sender_id: str) -> dict[str, object] | None:
    """Stored record for a realtime relay, with embedded users; None if not sent by ``sender_id``."""
    message = db.get(Message, message_id)
    if message is None or message.from_user_id != sender_id:
        return None
    users_by_id = user_service.fetch_users_by_ids(db, [message.from_user_id, message.to_user_id])
    return serialize_message(message, users_by_id=users_by_id)
