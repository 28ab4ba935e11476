from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from sqlalchemy import create_engine, delete, event, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import NotFound, PersistenceFailed
from ..schemas import Conversation, ConversationListItem, Message, NewMessage
from .entities import Base, ConversationRow, MessageRow

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()
    # ilike compiles to lower() on SQLite, whose builtin only folds ASCII.
    dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def _to_conversation(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        doctor_language=row.doctor_language,
        patient_language=row.patient_language,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _to_message(row: MessageRow) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_role=row.sender_role,
        original_text=row.original_text,
        translated_text=row.translated_text,
        audio_url=row.audio_url,
        created_at=_as_utc(row.created_at),
    )


class SQLAlchemyStore:
    """Conversation store on top of a SQLAlchemy engine.

    Blocking database work runs in a worker thread so callers on the event
    loop are never stalled by I/O.
    """

    def __init__(self, database_url: str, engine: Optional[Engine] = None) -> None:
        if engine is None:
            connect_args = {}
            if database_url.startswith("sqlite"):
                connect_args = {"check_same_thread": False, "timeout": 30.0}
            engine = create_engine(database_url, connect_args=connect_args)
        self.engine = engine
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _configure_sqlite_connection)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("Database operation failed: %s", exc)
            raise PersistenceFailed(f"Database operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _create_conversation(self, doctor_language: str, patient_language: str) -> Conversation:
        now = utc_now()
        row = ConversationRow(
            id=str(uuid.uuid4()),
            doctor_language=doctor_language,
            patient_language=patient_language,
            created_at=now,
            updated_at=now,
        )
        with self.session() as session:
            session.add(row)
            session.flush()
            return _to_conversation(row)

    def _get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self.session() as session:
            row = session.get(ConversationRow, conversation_id)
            return _to_conversation(row) if row is not None else None

    def _list_conversations(self) -> List[ConversationListItem]:
        stmt = (
            select(ConversationRow, func.count(MessageRow.seq))
            .outerjoin(MessageRow, MessageRow.conversation_id == ConversationRow.id)
            .group_by(ConversationRow.id)
            .order_by(ConversationRow.created_at.desc())
        )
        with self.session() as session:
            return [
                ConversationListItem(
                    **_to_conversation(row).model_dump(), message_count=count or 0
                )
                for row, count in session.execute(stmt).all()
            ]

    def _delete_conversation(self, conversation_id: str) -> bool:
        with self.session() as session:
            row = session.get(ConversationRow, conversation_id)
            if row is None:
                return False
            session.execute(delete(MessageRow).where(MessageRow.conversation_id == conversation_id))
            session.delete(row)
            return True

    def _list_messages(self, conversation_id: str) -> List[Message]:
        stmt = (
            select(MessageRow)
            .where(MessageRow.conversation_id == conversation_id)
            .order_by(MessageRow.created_at.asc(), MessageRow.seq.asc())
        )
        with self.session() as session:
            return [_to_message(row) for row in session.scalars(stmt)]

    def _insert_message(self, message: NewMessage) -> Message:
        with self.session() as session:
            conversation = session.get(ConversationRow, message.conversation_id)
            if conversation is None:
                raise NotFound(f"Conversation '{message.conversation_id}' not found.")
            now = utc_now()
            row = MessageRow(
                id=str(uuid.uuid4()),
                conversation_id=message.conversation_id,
                sender_role=message.sender_role,
                original_text=message.original_text,
                translated_text=message.translated_text,
                audio_url=message.audio_url,
                created_at=now,
            )
            session.add(row)
            conversation.updated_at = now
            session.flush()
            return _to_message(row)

    def _search_messages(self, query: str, limit: int) -> List[Message]:
        pattern = f"%{_escape_like(query)}%"
        stmt = (
            select(MessageRow)
            .where(
                or_(
                    MessageRow.original_text.ilike(pattern, escape="\\"),
                    MessageRow.translated_text.ilike(pattern, escape="\\"),
                )
            )
            .order_by(MessageRow.created_at.desc(), MessageRow.seq.desc())
            .limit(limit)
        )
        with self.session() as session:
            return [_to_message(row) for row in session.scalars(stmt)]

    async def create_conversation(self, doctor_language: str, patient_language: str) -> Conversation:
        return await asyncio.to_thread(self._create_conversation, doctor_language, patient_language)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return await asyncio.to_thread(self._get_conversation, conversation_id)

    async def list_conversations(self) -> List[ConversationListItem]:
        return await asyncio.to_thread(self._list_conversations)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return await asyncio.to_thread(self._delete_conversation, conversation_id)

    async def list_messages(self, conversation_id: str) -> List[Message]:
        return await asyncio.to_thread(self._list_messages, conversation_id)

    async def insert_message(self, message: NewMessage) -> Message:
        return await asyncio.to_thread(self._insert_message, message)

    async def search_messages(self, query: str, limit: int) -> List[Message]:
        return await asyncio.to_thread(self._search_messages, query, limit)
