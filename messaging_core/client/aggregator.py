"""Conversation list reconciliation.

Four partner sources are merged into one list: accepted friends, users the
local user messaged, users who messaged the local user, and the server's
record of past chat partners. The first source to mention an id owns the
entry; pending message-request senders are kept out of the list.
"""

from __future__ import annotations

import locale
import logging
from typing import Iterable, Mapping

from pydantic import ValidationError

from messaging_core.client.models import ConversationPartner, UserProfile

logger = logging.getLogger(__name__)

PartnerSource = Iterable[UserProfile | Mapping[str, object]] | None


def _profiles(source: PartnerSource) -> list[UserProfile]:
    if not source:
        return []
    profiles: list[UserProfile] = []
    for entry in source:
        if isinstance(entry, UserProfile):
            profiles.append(entry)
            continue
        try:
            profiles.append(UserProfile.model_validate(entry))
        except ValidationError:
            logger.debug("Skipping malformed partner entry %r", entry)
    return profiles


def _name_key(partner: ConversationPartner) -> str:
    return locale.strxfrm((partner.username or "").casefold())


def sort_partners(partners: Iterable[ConversationPartner]) -> list[ConversationPartner]:
    """Dated partners newest first, then undated partners by name."""
    dated: list[ConversationPartner] = []
    undated: list[ConversationPartner] = []
    for partner in partners:
        (dated if partner.last_message_at is not None else undated).append(partner)
    dated.sort(key=lambda partner: partner.last_message_at, reverse=True)
    undated.sort(key=_name_key)
    return dated + undated


def aggregate_conversations(
    friends: PartnerSource,
    outgoing: PartnerSource,
    incoming: PartnerSource,
    backend: PartnerSource,
    request_ids: Iterable[str] | None = None,
    unread_counts: Mapping[str, int] | None = None,
) -> list[ConversationPartner]:
    excluded = set(request_ids or ())
    counts = unread_counts or {}

    merged: dict[str, ConversationPartner] = {}
    sources = (
        (friends, True),
        (outgoing, False),
        (incoming, False),
        (backend, False),
    )
    for source, is_friend in sources:
        for profile in _profiles(source):
            if profile.id in merged:
                continue
            merged[profile.id] = ConversationPartner.from_profile(
                profile,
                is_friend=is_friend,
                unread_count=counts.get(profile.id, 0),
            )

    visible = [partner for partner_id, partner in merged.items() if partner_id not in excluded]
    logger.debug(
        "Aggregated conversations merged=%s hidden_requests=%s visible=%s",
        len(merged),
        len(merged) - len(visible),
        len(visible),
    )
    return sort_partners(visible)
