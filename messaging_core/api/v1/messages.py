from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from messaging_core.api.deps import get_current_user
from messaging_core.core.errors import success_response
from messaging_core.db.session import get_db
from messaging_core.models import User
from messaging_core.schemas.messages import EditMessageRequest, ReactRequest, SendMessageRequest
from messaging_core.schemas.users import ChatUser, UserPublic
from messaging_core.services import message_request_service, message_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/messages", tags=["messages"])

# Static paths are registered before the /{user_id} catch-alls.


@router.get("/chat-users")
def list_chat_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = message_service.list_chat_users(db, current_user.id)
    return success_response([ChatUser.model_validate(row).model_dump(mode="json") for row in rows])


@router.get("/requests")
def list_message_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = message_request_service.list_pending_senders(db, current_user.id)
    return success_response([UserPublic.model_validate(row).model_dump(mode="json") for row in rows])


@router.post("/requests/{sender_id}/accept")
def accept_message_request(
    sender_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    logger.info("Accept message request endpoint hit user_id=%s sender_id=%s", current_user.id, sender_id)
    message_request_service.accept(db, recipient_id=current_user.id, sender_id=sender_id)
    return success_response({"accepted": True})


@router.post("/requests/{sender_id}/decline")
def decline_message_request(
    sender_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    logger.info("Decline message request endpoint hit user_id=%s sender_id=%s", current_user.id, sender_id)
    message_request_service.decline(db, recipient_id=current_user.id, sender_id=sender_id)
    return success_response({"declined": True})


@router.get("/unread/counts")
def unread_counts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_response(message_service.unread_counts(db, current_user.id))


@router.get("/{user_id}")
def get_history(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    messages = message_service.list_history(db, user_id=current_user.id, other_user_id=user_id)
    return success_response(messages)


@router.post("/{user_id}")
def send_message(
    user_id: str,
    payload: SendMessageRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = message_service.send_message(db, sender_id=current_user.id, recipient_id=user_id, text=payload.text)
    return success_response(message, status_code=status.HTTP_201_CREATED)


@router.put("/{message_id}")
def edit_message(
    message_id: str,
    payload: EditMessageRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = message_service.edit_message(db, user_id=current_user.id, message_id=message_id, text=payload.text)
    return success_response(message)


@router.delete("/{message_id}")
def delete_message(
    message_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message_service.delete_message(db, user_id=current_user.id, message_id=message_id)
    return success_response({"deleted": True, "id": message_id})


@router.patch("/{message_id}/reactions")
def react_to_message(
    message_id: str,
    payload: ReactRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    message = message_service.react_to_message(
        db,
        user_id=current_user.id,
        message_id=message_id,
        emoji=payload.emoji,
    )
    return success_response(message)
