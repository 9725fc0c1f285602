"""
Raw object shapes handed over by the upstream messaging client.

Only the semantic fields the store needs are modelled; every field is
optional so that partially populated objects still validate. The client is
responsible for turning its wire format into these models.
"""

from typing import Optional

from pydantic import BaseModel, Field


class RawParticipantID(BaseModel):
    participant_id: str = ""
    number: str = ""


class RawParticipant(BaseModel):
    id: Optional[RawParticipantID] = None
    full_name: str = ""
    first_name: str = ""
    formatted_number: str = ""
    is_me: bool = False


class RawTextContent(BaseModel):
    content: str = ""


class RawMediaContent(BaseModel):
    media_id: str = ""
    mime_type: str = ""
    decryption_key: bytes = b""
    # Upstream media format code, e.g. "IMAGE_JPEG"
    format: str = ""
    media_name: str = ""
    size: int = 0


class RawContentEntry(BaseModel):
    """One unit of a message payload. At most one of ``text``/``media`` is set."""
    action_message_id: Optional[str] = None
    text: Optional[RawTextContent] = None
    media: Optional[RawMediaContent] = None


class RawReaction(BaseModel):
    emoji: str = ""
    participant_ids: list[str] = Field(default_factory=list)


class RawReply(BaseModel):
    message_id: str = ""


class RawMessageStatus(BaseModel):
    status: str = ""


class RawMessage(BaseModel):
    message_id: str = ""
    conversation_id: str = ""
    # Upstream timestamps are microseconds
    timestamp: int = 0
    sender_participant: Optional[RawParticipant] = None
    content: list[RawContentEntry] = Field(default_factory=list)
    reactions: list[RawReaction] = Field(default_factory=list)
    reply: Optional[RawReply] = None
    message_status: Optional[RawMessageStatus] = None


class RawConversation(BaseModel):
    conversation_id: str = ""
    name: str = ""
    is_group: bool = False
    participants: list[RawParticipant] = Field(default_factory=list)
    last_message_timestamp: int = 0
    unread: bool = False
