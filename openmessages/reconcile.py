"""
Placeholder message reconciliation.

When a message is sent, the sending flow stores a placeholder under a
``tmp_`` id so it shows up immediately. Once any authoritative
(server-assigned) message lands for that conversation, every placeholder in
the conversation is deleted: a single send can race with delivery status
updates and leave several placeholders behind.
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from typing import TYPE_CHECKING

from openmessages.metrics import record_placeholders_deleted
from openmessages.schemas import Message

if TYPE_CHECKING:
    from openmessages.storage import Store

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "tmp_"


class ReconciliationState(str, enum.Enum):
    PLACEHOLDER_PRESENT = "placeholder_present"
    RECONCILED = "reconciled"


def is_placeholder_id(message_id: str) -> bool:
    return message_id.startswith(PLACEHOLDER_PREFIX)


def new_placeholder_id() -> str:
    return PLACEHOLDER_PREFIX + uuid.uuid4().hex


def build_placeholder(
    conversation_id: str,
    body: str,
    sender_name: str = "",
    sender_number: str = "",
    timestamp_ms: int | None = None,
) -> Message:
    """Build the local echo of an outgoing message, before the server confirms it."""
    return Message(
        message_id=new_placeholder_id(),
        conversation_id=conversation_id,
        sender_name=sender_name,
        sender_number=sender_number,
        body=body,
        timestamp_ms=timestamp_ms if timestamp_ms is not None else int(time.time() * 1000),
        status="sending",
        is_from_me=True,
    )


def conversation_state(store: Store, conversation_id: str) -> ReconciliationState:
    if store.count_tmp_messages(conversation_id):
        return ReconciliationState.PLACEHOLDER_PRESENT
    return ReconciliationState.RECONCILED


def reconcile(store: Store, conversation_id: str) -> int:
    """
    Delete all placeholders in ``conversation_id``.

    Safe to call any number of times; returns 0 once nothing is left.
    """
    deleted = store.delete_tmp_messages(conversation_id)
    record_placeholders_deleted(deleted)
    return deleted


def on_authoritative_message(store: Store, message: Message) -> int:
    """
    Trigger reconciliation when ``message`` is a server-confirmed copy.

    Placeholder messages never trigger it. Returns the number of
    placeholders deleted.
    """
    if is_placeholder_id(message.message_id) or not message.conversation_id:
        return 0
    deleted = reconcile(store, message.conversation_id)
    if deleted:
        logger.debug(
            f"Conversation {message.conversation_id} {ReconciliationState.RECONCILED.value} "
            f"after message {message.message_id}"
        )
    return deleted
