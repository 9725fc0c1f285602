"""
Map raw upstream objects into store records.

Every function here is a pure transform. Missing or malformed optional
substructures degrade to empty values instead of raising.
"""

from typing import Optional

from pydantic import BaseModel

from openmessages.protocol import RawConversation, RawMessage, RawParticipant
from openmessages.schemas import Contact, Conversation, Message, Participant, Reaction


DEFAULT_IMAGE_MIME = "image/jpeg"
DEFAULT_MIME = "application/octet-stream"

IMAGE_FORMATS = frozenset({
    "IMAGE_JPEG",
    "IMAGE_JPG",
    "IMAGE_PNG",
    "IMAGE_GIF",
    "IMAGE_WBMP",
    "IMAGE_X_MS_BMP",
    "IMAGE_UNSPECIFIED",
})

UNKNOWN_STATUS = "unknown"


class MediaInfo(BaseModel):
    """Descriptor of a message attachment."""
    media_id: str
    mime_type: str
    decryption_key: bytes
    media_name: str = ""
    size: int = 0


def to_millis(upstream_ts: int) -> int:
    """Upstream timestamps are 1000x the stored unit."""
    return (upstream_ts or 0) // 1000


def participant_number(p: RawParticipant) -> str:
    number = p.id.number if p.id is not None else ""
    return number or p.formatted_number


def normalize_participants(participants: list[RawParticipant]) -> list[Participant]:
    return [
        Participant(name=p.full_name, number=participant_number(p), is_me=p.is_me)
        for p in participants
    ]


def normalize_conversation(conv: RawConversation) -> Conversation:
    return Conversation(
        conversation_id=conv.conversation_id,
        name=conv.name,
        is_group=conv.is_group,
        participants=normalize_participants(conv.participants),
        last_message_ts=to_millis(conv.last_message_timestamp),
        unread_count=1 if conv.unread else 0,
    )


def normalize_contact(p: RawParticipant) -> Optional[Contact]:
    """Contact for a conversation participant; None for self or unidentifiable participants."""
    if p.is_me:
        return None
    number = participant_number(p)
    contact_id = (p.id.participant_id if p.id is not None else "") or number
    if not contact_id:
        return None
    return Contact(contact_id=contact_id, name=p.full_name or p.first_name, number=number)


def extract_body(msg: RawMessage) -> str:
    """Text of the first content entry carrying non-empty text."""
    for entry in msg.content:
        if entry.text is not None and entry.text.content:
            return entry.text.content
    return ""


def extract_sender_info(msg: RawMessage) -> tuple[str, str]:
    p = msg.sender_participant
    if p is None:
        return "", ""
    return p.full_name or p.first_name, participant_number(p)


def extract_media(msg: RawMessage) -> Optional[MediaInfo]:
    """Descriptor of the first media entry, or None for messages without media."""
    for entry in msg.content:
        media = entry.media
        if media is None:
            continue
        mime_type = media.mime_type
        if not mime_type:
            mime_type = DEFAULT_IMAGE_MIME if media.format in IMAGE_FORMATS else DEFAULT_MIME
        return MediaInfo(
            media_id=media.media_id,
            mime_type=mime_type,
            decryption_key=media.decryption_key,
            media_name=media.media_name,
            size=media.size,
        )
    return None


def extract_reactions(msg: RawMessage) -> Optional[list[Reaction]]:
    reactions = [
        Reaction(emoji=r.emoji, count=len(r.participant_ids))
        for r in msg.reactions
        if r.emoji
    ]
    return reactions or None


def extract_reply_to_id(msg: RawMessage) -> str:
    return msg.reply.message_id if msg.reply is not None else ""


def extract_status(msg: RawMessage) -> str:
    if msg.message_status is not None and msg.message_status.status:
        return msg.message_status.status
    return UNKNOWN_STATUS


def normalize_message(msg: RawMessage) -> Message:
    """
    Build the store record for a raw message.

    Raises:
        ValueError: If ``msg`` is None.
    """
    if msg is None:
        raise ValueError("normalize_message requires a message")

    sender_name, sender_number = extract_sender_info(msg)
    record = Message(
        message_id=msg.message_id,
        conversation_id=msg.conversation_id,
        sender_name=sender_name,
        sender_number=sender_number,
        body=extract_body(msg),
        timestamp_ms=to_millis(msg.timestamp),
        status=extract_status(msg),
        is_from_me=msg.sender_participant is not None and msg.sender_participant.is_me,
        reactions=extract_reactions(msg),
        reply_to_id=extract_reply_to_id(msg),
    )

    media = extract_media(msg)
    if media is not None:
        record.media_id = media.media_id
        record.mime_type = media.mime_type
        record.decryption_key = media.decryption_key.hex()

    return record
