"""Relational persistence for conversations and their messages."""

from .entities import Base, ConversationRow, MessageRow
from .store import SQLAlchemyStore

__all__ = ["Base", "ConversationRow", "MessageRow", "SQLAlchemyStore"]
