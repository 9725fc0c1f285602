"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For the in-memory record types, see schemas.py.
"""

from sqlalchemy import Boolean, Column, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

# Base class for SQLAlchemy models
Base = declarative_base()


class Conversation(Base):
    """
    A mirrored conversation.

    Table: conversations
    Primary Key: conversation_id
    """
    __tablename__ = "conversations"

    conversation_id = Column(String, primary_key=True)
    name = Column(String, nullable=False, default="", server_default="")
    is_group = Column(Boolean, nullable=False, default=False, server_default="0")
    participants = Column(Text, nullable=False, default="[]", server_default="[]")  # JSON array
    last_message_ts = Column(Integer, nullable=False, default=0, server_default="0")  # epoch ms
    unread_count = Column(Integer, nullable=False, default=0, server_default="0")


class Message(Base):
    """
    A mirrored message, either server-confirmed or a local placeholder.

    Table: messages
    Primary Key: message_id (upserts are last-write-wins)
    """
    __tablename__ = "messages"

    message_id = Column(String, primary_key=True)
    # Not a foreign key: messages may land before their conversation
    conversation_id = Column(String, nullable=False, default="", server_default="")
    sender_name = Column(String, nullable=False, default="", server_default="")
    sender_number = Column(String, nullable=False, default="", server_default="")
    body = Column(Text, nullable=False, default="", server_default="")
    timestamp_ms = Column(Integer, nullable=False, default=0, server_default="0")
    status = Column(String, nullable=False, default="", server_default="")
    is_from_me = Column(Boolean, nullable=False, default=False, server_default="0")
    media_id = Column(String, nullable=False, default="", server_default="")
    mime_type = Column(String, nullable=False, default="", server_default="")
    decryption_key = Column(String, nullable=False, default="", server_default="")  # hex
    reactions = Column(Text, nullable=False, default="", server_default="")  # JSON array or ''
    reply_to_id = Column(String, nullable=False, default="", server_default="")

    __table_args__ = (
        Index("idx_messages_conv_ts", "conversation_id", "timestamp_ms"),
        Index("idx_messages_ts", "timestamp_ms"),
    )


class Contact(Base):
    """
    Table: contacts
    Primary Key: contact_id
    """
    __tablename__ = "contacts"

    contact_id = Column(String, primary_key=True)
    name = Column(String, nullable=False, default="", server_default="")
    number = Column(String, nullable=False, default="", server_default="")


class Draft(Base):
    """
    Table: drafts
    Primary Key: draft_id
    """
    __tablename__ = "drafts"

    draft_id = Column(String, primary_key=True)
    conversation_id = Column(String, nullable=False)
    body = Column(Text, nullable=False, default="", server_default="")
    created_at = Column(Integer, nullable=False, default=0, server_default="0")  # epoch ms
