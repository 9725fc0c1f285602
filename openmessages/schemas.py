"""
Pydantic schemas for records and API responses.

This module contains:
- Record models passed in and out of the Store
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Record Models
# =============================================================================

class Participant(BaseModel):
    """One member of a conversation, as stored in the participants column."""
    name: str = ""
    number: str = ""
    is_me: bool = False


class Reaction(BaseModel):
    """An emoji and how many participants reacted with it."""
    emoji: str
    count: int = Field(..., ge=0)


class Conversation(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    name: str = ""
    is_group: bool = False
    participants: list[Participant] = Field(default_factory=list)
    last_message_ts: int = 0
    unread_count: int = Field(0, ge=0)


class Message(BaseModel):
    """
    A message record.

    ``decryption_key`` is opaque reference material for the media download
    collaborator; it is excluded from every serialized form.
    """
    message_id: str = Field(..., min_length=1)
    conversation_id: str = ""
    sender_name: str = ""
    sender_number: str = ""
    body: str = ""
    timestamp_ms: int = 0
    status: str = ""
    is_from_me: bool = False
    media_id: str = ""
    mime_type: str = ""
    decryption_key: str = Field("", exclude=True, repr=False)
    reactions: Optional[list[Reaction]] = None
    reply_to_id: str = ""

    @property
    def has_media(self) -> bool:
        return bool(self.media_id)


class Contact(BaseModel):
    contact_id: str = Field(..., min_length=1)
    name: str = ""
    number: str = ""


class Draft(BaseModel):
    draft_id: str = Field(..., min_length=1)
    conversation_id: str = Field(..., min_length=1)
    body: str = ""
    created_at: int = 0


class StoreStats(BaseModel):
    """Row counts per table."""
    conversations: int = Field(..., ge=0)
    messages: int = Field(..., ge=0)
    contacts: int = Field(..., ge=0)
    drafts: int = Field(..., ge=0)


# =============================================================================
# Pydantic Request Models
# =============================================================================

class DraftRequest(BaseModel):
    """Body of POST /api/drafts."""
    conversation_id: str = Field(..., min_length=1, description="Conversation the draft belongs to")
    body: str = Field(..., min_length=1, max_length=4096, description="Draft text")


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")
    request_id: Optional[str] = Field(None, description="Request ID, for server errors")


class MessageResponse(BaseModel):
    """
    Public view of a message.

    Media, reaction and reply fields are omitted when empty, and the
    decryption key is never included.
    """
    message_id: str = Field(..., description="Message identifier")
    conversation_id: str = Field(..., description="Owning conversation")
    sender_name: str = ""
    sender_number: str = ""
    body: str = ""
    display_body: str = Field("", description="Body annotated with any media attachment")
    timestamp_ms: int = 0
    status: str = ""
    is_from_me: bool = False
    media_id: Optional[str] = None
    mime_type: Optional[str] = None
    media_extension: Optional[str] = None
    reactions: Optional[list[Reaction]] = None
    reply_to_id: Optional[str] = None


class StatusResponse(BaseModel):
    """Response model for GET /api/status."""
    connected: bool = Field(..., description="Whether an upstream client is attached")
    stats: StoreStats


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
