"""
Ingestion orchestration: bulk backfill and live message ingestion.

Both paths normalize raw upstream objects and upsert them into the Store.
Backfill tolerates per-conversation failures: each one is logged and
skipped, and only a failure of the initial conversation listing aborts the
run.
"""

import logging
from typing import Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError

from openmessages.config import get_settings
from openmessages.errors import BackfillError, StorageError
from openmessages.metrics import record_conversation_ingest, record_message_ingest
from openmessages.normalizer import normalize_contact, normalize_conversation, normalize_message
from openmessages.protocol import RawConversation, RawMessage
from openmessages.reconcile import on_authoritative_message
from openmessages.schemas import Message
from openmessages.storage import Store

logger = logging.getLogger(__name__)


class MessagingClient(Protocol):
    """The subset of the upstream protocol client used for backfill."""

    def list_conversations(self, limit: int, folder: str) -> Sequence[RawConversation]:
        ...

    def fetch_messages(
        self, conversation_id: str, limit: int, cursor: Optional[str] = None
    ) -> Sequence[RawMessage]:
        ...


class BackfillResult(BaseModel):
    """
    Tally of one backfill run.

    A conversation is either stored (counted in ``conversations``) or listed
    in ``failed_conversations``. A stored conversation whose messages could
    not be fetched is also listed in ``failed_fetches``.
    """
    conversations: int = 0
    messages: int = 0
    failed_conversations: list[str] = Field(default_factory=list)
    failed_fetches: list[str] = Field(default_factory=list)
    failed_messages: int = 0
    failed_contacts: int = 0


def store_conversation(store: Store, raw: RawConversation) -> int:
    """
    Normalize and upsert a conversation and the contacts of its participants.

    A failed contact upsert is logged and skipped; only a failure to store the
    conversation itself is raised.

    Returns:
        The number of contacts that could not be stored.
    """
    store.upsert_conversation(normalize_conversation(raw))
    failed = 0
    for participant in raw.participants:
        contact = normalize_contact(participant)
        if contact is None:
            continue
        try:
            store.upsert_contact(contact)
        except StorageError as e:
            logger.warning(f"Failed to store contact {contact.contact_id}: {e}")
            failed += 1
    return failed


def store_message(store: Store, raw: RawMessage, source: str = "backfill") -> Optional[Message]:
    """
    Normalize and upsert one message.

    Returns:
        The stored record, or None if it could not be normalized or written.
        The failure is logged here.
    """
    try:
        message = normalize_message(raw)
        store.upsert_message(message)
    except (StorageError, ValidationError) as e:
        logger.error(f"Failed to store {source} message {raw.message_id}: {e}")
        record_message_ingest(source, "failed")
        return None
    record_message_ingest(source, "stored")
    return message


def ingest_message(store: Store, raw: RawMessage) -> Optional[Message]:
    """
    Store a message pushed live by the upstream client.

    An authoritative message supersedes every placeholder of its
    conversation, so reconciliation runs after it is stored.
    """
    message = store_message(store, raw, source="live")
    if message is None:
        return None
    on_authoritative_message(store, message)
    return message


def backfill(
    client: MessagingClient,
    store: Store,
    conversation_limit: Optional[int] = None,
    message_limit: Optional[int] = None,
    folder: Optional[str] = None,
) -> BackfillResult:
    """
    Fetch conversations and their recent messages and store them.

    Limits and folder default to the BACKFILL_* settings.

    Raises:
        BackfillError: If the conversation listing itself fails.
    """
    settings = get_settings()
    if conversation_limit is None:
        conversation_limit = settings.BACKFILL_CONVERSATION_LIMIT
    if message_limit is None:
        message_limit = settings.BACKFILL_MESSAGE_LIMIT
    if folder is None:
        folder = settings.BACKFILL_FOLDER

    logger.info("Starting backfill of conversations and messages")

    try:
        conversations = client.list_conversations(conversation_limit, folder)
    except Exception as e:
        logger.error(f"Failed to list conversations: {e}")
        raise BackfillError(f"list conversations: {e}") from e

    logger.info(f"Fetched {len(conversations)} conversations")
    result = BackfillResult()

    for raw_conv in conversations:
        conv_id = raw_conv.conversation_id
        try:
            result.failed_contacts += store_conversation(store, raw_conv)
        except (StorageError, ValidationError) as e:
            logger.error(f"Failed to store conversation {conv_id}: {e}")
            record_conversation_ingest("failed")
            result.failed_conversations.append(conv_id)
            continue
        record_conversation_ingest("stored")
        result.conversations += 1

        try:
            raw_messages = client.fetch_messages(conv_id, message_limit, None)
        except Exception as e:
            logger.warning(f"Failed to fetch messages for conversation {conv_id}: {e}")
            result.failed_fetches.append(conv_id)
            continue

        for raw_msg in raw_messages:
            if store_message(store, raw_msg, source="backfill") is None:
                result.failed_messages += 1
            else:
                result.messages += 1

    logger.info(
        f"Backfill complete: {result.conversations} conversations, "
        f"{result.messages} messages, {len(result.failed_conversations)} failed conversations, "
        f"{len(result.failed_fetches)} failed fetches"
    )
    return result
