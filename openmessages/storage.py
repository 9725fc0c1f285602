import json
import logging
import threading
from contextlib import contextmanager, nullcontext
from typing import Any, ContextManager, Iterator, Optional

from sqlalchemy import create_engine, delete, event, func, or_, select, text
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from openmessages import models
from openmessages.errors import StorageError
from openmessages.reconcile import PLACEHOLDER_PREFIX
from openmessages.schema import init_schema
from openmessages.schemas import (
    Contact,
    Conversation,
    Draft,
    Message,
    Participant,
    Reaction,
    StoreStats,
)

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("conversations", "messages", "contacts", "drafts")


def _configure_connection(dbapi_connection, connection_record) -> None:
    """Per-connection pragmas: WAL journal, fsync on commit, wait on locks."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_sqlite_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine for a SQLite URL.

    In-memory databases share one connection (StaticPool) so every session
    sees the same data.
    """
    url = make_url(database_url)
    kwargs: dict[str, Any] = {
        # Writers are serialized by Store; connections may cross threads
        "connect_args": {"check_same_thread": False},
        "echo": False,
    }
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    event.listen(engine, "connect", _configure_connection)
    return engine


# =============================================================================
# JSON column helpers
# =============================================================================

def participants_to_json(participants: list[Participant]) -> str:
    items = []
    for p in participants:
        item: dict[str, Any] = {"name": p.name, "number": p.number}
        if p.is_me:
            item["is_me"] = True
        items.append(item)
    return json.dumps(items, ensure_ascii=False, separators=(",", ":"))


def participants_from_json(raw: str) -> list[Participant]:
    if not raw:
        return []
    try:
        return [Participant.model_validate(item) for item in json.loads(raw)]
    except (ValueError, TypeError) as e:
        logger.warning(f"Unreadable participants column, treating as empty: {e}")
        return []


def reactions_to_json(reactions: Optional[list[Reaction]]) -> str:
    if not reactions:
        return ""
    return json.dumps(
        [{"emoji": r.emoji, "count": r.count} for r in reactions],
        ensure_ascii=False,
        separators=(",", ":"),
    )


def reactions_from_json(raw: str) -> Optional[list[Reaction]]:
    if not raw:
        return None
    try:
        reactions = [Reaction.model_validate(item) for item in json.loads(raw)]
    except (ValueError, TypeError) as e:
        logger.warning(f"Unreadable reactions column, treating as absent: {e}")
        return None
    return reactions or None


# =============================================================================
# Row conversion
# =============================================================================

def _conversation_from_row(row: models.Conversation) -> Conversation:
    return Conversation(
        conversation_id=row.conversation_id,
        name=row.name,
        is_group=bool(row.is_group),
        participants=participants_from_json(row.participants),
        last_message_ts=row.last_message_ts,
        unread_count=row.unread_count,
    )


def _message_from_row(row: models.Message) -> Message:
    return Message(
        message_id=row.message_id,
        conversation_id=row.conversation_id,
        sender_name=row.sender_name,
        sender_number=row.sender_number,
        body=row.body,
        timestamp_ms=row.timestamp_ms,
        status=row.status,
        is_from_me=bool(row.is_from_me),
        media_id=row.media_id,
        mime_type=row.mime_type,
        decryption_key=row.decryption_key,
        reactions=reactions_from_json(row.reactions),
        reply_to_id=row.reply_to_id,
    )


def _contact_from_row(row: models.Contact) -> Contact:
    return Contact(contact_id=row.contact_id, name=row.name, number=row.number)


def _draft_from_row(row: models.Draft) -> Draft:
    return Draft(
        draft_id=row.draft_id,
        conversation_id=row.conversation_id,
        body=row.body,
        created_at=row.created_at,
    )


class Store:
    """
    Single-writer SQLite store for conversations, messages, contacts and drafts.

    One Store is created per database and handed to every component that
    needs persistence. All mutating calls are serialized on an internal lock.
    Reads run on their own session without taking it, except on in-memory
    databases where every session shares one connection.

    Lookups of a single record return ``None`` when it does not exist. Any
    engine or disk failure is raised as :class:`StorageError`.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._write_lock = threading.RLock()
        self.engine = create_sqlite_engine(database_url)
        self._shared_connection = isinstance(self.engine.pool, StaticPool)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

        logger.debug(f"Initializing database with URL: {database_url}")
        try:
            init_schema(self.engine)
        except SQLAlchemyError as e:
            self.engine.dispose()
            logger.error(f"Failed to initialize database: {e}")
            raise StorageError(f"initialize database: {e}") from e
        logger.info("Database initialized successfully")

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _connection_guard(self) -> ContextManager[Any]:
        """Lock held for any session use when all sessions share one connection."""
        return self._write_lock if self._shared_connection else nullcontext()

    @contextmanager
    def _session(self, description: str) -> Iterator[Session]:
        with self._connection_guard():
            db = self._session_factory()
            try:
                yield db
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to {description}: {e}")
                raise StorageError(f"{description}: {e}") from e
            finally:
                db.close()

    def _write(self, stmt, description: str) -> int:
        """Execute one mutating statement in its own transaction."""
        with self._write_lock:
            with self._session(description) as db:
                result = db.execute(stmt)
                db.commit()
                return result.rowcount

    def _upsert(self, table, key: str, values: dict[str, Any], description: str) -> None:
        stmt = sqlite_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[key],
            set_={name: stmt.excluded[name] for name in values if name != key},
        )
        self._write(stmt, description)

    # =========================================================================
    # Conversations
    # =========================================================================

    def upsert_conversation(self, conversation: Conversation) -> None:
        """Insert or replace a conversation by conversation_id."""
        logger.debug(f"Upserting conversation: {conversation.conversation_id}")
        self._upsert(
            models.Conversation.__table__,
            "conversation_id",
            {
                "conversation_id": conversation.conversation_id,
                "name": conversation.name,
                "is_group": conversation.is_group,
                "participants": participants_to_json(conversation.participants),
                "last_message_ts": conversation.last_message_ts,
                "unread_count": conversation.unread_count,
            },
            f"upsert conversation {conversation.conversation_id}",
        )

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._session(f"get conversation {conversation_id}") as db:
            row = db.get(models.Conversation, conversation_id)
            return _conversation_from_row(row) if row is not None else None

    def list_conversations(self, limit: int) -> list[Conversation]:
        """Most recently active conversations first."""
        query = (
            select(models.Conversation)
            .order_by(
                models.Conversation.last_message_ts.desc(),
                models.Conversation.conversation_id.asc(),
            )
            .limit(limit)
        )
        with self._session("list conversations") as db:
            return [_conversation_from_row(row) for row in db.scalars(query)]

    # =========================================================================
    # Messages
    # =========================================================================

    def upsert_message(self, message: Message) -> None:
        """Insert or replace a message by message_id. Last write wins on every field."""
        logger.debug(f"Upserting message: {message.message_id} conv={message.conversation_id}")
        self._upsert(
            models.Message.__table__,
            "message_id",
            {
                "message_id": message.message_id,
                "conversation_id": message.conversation_id,
                "sender_name": message.sender_name,
                "sender_number": message.sender_number,
                "body": message.body,
                "timestamp_ms": message.timestamp_ms,
                "status": message.status,
                "is_from_me": message.is_from_me,
                "media_id": message.media_id,
                "mime_type": message.mime_type,
                "decryption_key": message.decryption_key,
                "reactions": reactions_to_json(message.reactions),
                "reply_to_id": message.reply_to_id,
            },
            f"upsert message {message.message_id}",
        )

    def get_message_by_id(self, message_id: str) -> Optional[Message]:
        """Return the message, or None when no such message is stored."""
        with self._session(f"get message {message_id}") as db:
            row = db.get(models.Message, message_id)
            return _message_from_row(row) if row is not None else None

    def get_messages_by_conversation(self, conversation_id: str, limit: int) -> list[Message]:
        query = (
            select(models.Message)
            .where(models.Message.conversation_id == conversation_id)
            .order_by(models.Message.timestamp_ms.desc())
            .limit(limit)
        )
        with self._session(f"get messages for conversation {conversation_id}") as db:
            return [_message_from_row(row) for row in db.scalars(query)]

    def get_messages(
        self,
        phone_number: Optional[str] = None,
        after_ms: Optional[int] = None,
        before_ms: Optional[int] = None,
        limit: int = 50,
    ) -> list[Message]:
        """
        Retrieve messages newest first, with optional AND-combined filters.

        Args:
            phone_number: Exact sender number; empty means not applied
            after_ms: Inclusive lower timestamp bound; 0 means not applied
            before_ms: Inclusive upper timestamp bound; 0 means not applied
            limit: Maximum number of messages to return
        """
        query = select(models.Message)

        if phone_number:
            query = query.where(models.Message.sender_number == phone_number)
        if after_ms:
            query = query.where(models.Message.timestamp_ms >= after_ms)
        if before_ms:
            query = query.where(models.Message.timestamp_ms <= before_ms)

        query = query.order_by(models.Message.timestamp_ms.desc()).limit(limit)
        logger.debug(f"Filters: phone={phone_number}, after={after_ms}, before={before_ms}")

        with self._session("query messages") as db:
            return [_message_from_row(row) for row in db.scalars(query)]

    def search_messages(
        self, query: str, phone_number: Optional[str] = None, limit: int = 50
    ) -> list[Message]:
        """Substring search over message bodies using SQL ``LIKE '%query%'``."""
        stmt = select(models.Message).where(models.Message.body.like(f"%{query}%"))
        if phone_number:
            stmt = stmt.where(models.Message.sender_number == phone_number)
        stmt = stmt.order_by(models.Message.timestamp_ms.desc()).limit(limit)

        with self._session(f"search messages for {query!r}") as db:
            return [_message_from_row(row) for row in db.scalars(stmt)]

    def _is_tmp_in(self, conversation_id: str):
        # Exact, case-sensitive prefix match
        prefix = func.substr(models.Message.message_id, 1, len(PLACEHOLDER_PREFIX))
        return (
            models.Message.conversation_id == conversation_id,
            prefix == PLACEHOLDER_PREFIX,
        )

    def count_tmp_messages(self, conversation_id: str) -> int:
        stmt = select(func.count()).select_from(models.Message).where(
            *self._is_tmp_in(conversation_id)
        )
        with self._session(f"count placeholder messages in {conversation_id}") as db:
            return db.scalar(stmt) or 0

    def delete_tmp_messages(self, conversation_id: str) -> int:
        """
        Delete every placeholder message in a conversation.

        Returns:
            Number of messages deleted (0 when there were none).
        """
        stmt = (
            delete(models.Message)
            .where(*self._is_tmp_in(conversation_id))
            .execution_options(synchronize_session=False)
        )
        deleted = self._write(stmt, f"delete placeholder messages in {conversation_id}")
        if deleted:
            logger.info(f"Deleted {deleted} placeholder message(s) in conversation {conversation_id}")
        return deleted

    # =========================================================================
    # Contacts
    # =========================================================================

    def upsert_contact(self, contact: Contact) -> None:
        self._upsert(
            models.Contact.__table__,
            "contact_id",
            {"contact_id": contact.contact_id, "name": contact.name, "number": contact.number},
            f"upsert contact {contact.contact_id}",
        )

    def list_contacts(self, query: str = "", limit: int = 50) -> list[Contact]:
        """
        Contacts ordered by name. A non-empty query keeps contacts whose name
        or number matches ``LIKE '%query%'``.
        """
        stmt = select(models.Contact)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(
                or_(models.Contact.name.like(pattern), models.Contact.number.like(pattern))
            )
        stmt = stmt.order_by(models.Contact.name.asc()).limit(limit)

        with self._session("list contacts") as db:
            return [_contact_from_row(row) for row in db.scalars(stmt)]

    # =========================================================================
    # Drafts
    # =========================================================================

    def upsert_draft(self, draft: Draft) -> None:
        self._upsert(
            models.Draft.__table__,
            "draft_id",
            {
                "draft_id": draft.draft_id,
                "conversation_id": draft.conversation_id,
                "body": draft.body,
                "created_at": draft.created_at,
            },
            f"upsert draft {draft.draft_id}",
        )

    def list_drafts(self, conversation_id: str, limit: int = 50) -> list[Draft]:
        stmt = (
            select(models.Draft)
            .where(models.Draft.conversation_id == conversation_id)
            .order_by(models.Draft.created_at.desc())
            .limit(limit)
        )
        with self._session(f"list drafts for {conversation_id}") as db:
            return [_draft_from_row(row) for row in db.scalars(stmt)]

    # =========================================================================
    # Health and stats
    # =========================================================================

    def stats(self) -> StoreStats:
        with self._session("compute store stats") as db:
            counts = {
                name: db.scalar(select(func.count()).select_from(model)) or 0
                for name, model in (
                    ("conversations", models.Conversation),
                    ("messages", models.Message),
                    ("contacts", models.Contact),
                    ("drafts", models.Draft),
                )
            }
        return StoreStats(**counts)

    def check_health(self) -> bool:
        """
        Check if the database is reachable and schema is applied.

        Returns:
            True if DB is healthy and schema exists, False otherwise.
        """
        logger.debug("Checking database health...")
        try:
            with self._connection_guard(), self._session_factory() as db:
                db.execute(text("SELECT 1"))
                tables = set(
                    db.scalars(text("SELECT name FROM sqlite_master WHERE type='table'"))
                )
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

        missing = [t for t in REQUIRED_TABLES if t not in tables]
        if missing:
            logger.error(f"Database schema not applied: missing tables {missing}")
            return False
        logger.debug("Database health check passed")
        return True
