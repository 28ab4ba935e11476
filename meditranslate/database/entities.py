"""
ORM models
==========

``ConversationRow`` and ``MessageRow`` back the ``conversations`` and
``messages`` tables. A conversation owns its messages: the foreign key
cascades on delete and the store removes messages explicitly as well, so
engines without foreign key enforcement behave the same.

``MessageRow.seq`` is an insertion counter. Messages are ordered by
``created_at`` and ``seq`` breaks ties between equal timestamps.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column
from sqlalchemy.schema import MetaData

metadata = MetaData()
Base = declarative_base(metadata=metadata)


class ConversationRow(Base):
    """A bilingual doctor/patient session."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    doctor_language: Mapped[str] = mapped_column(String(10), nullable=False)
    patient_language: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MessageRow(Base):
    """One immutable utterance within a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint(
            "sender_role IN ('doctor', 'patient')", name="ck_messages_sender_role"
        ),
        Index("idx_messages_conversation", "conversation_id"),
        Index("idx_messages_created", "created_at"),
    )

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    conversation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_role: Mapped[str] = mapped_column(String(20), nullable=False)
    original_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    translated_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    audio_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
