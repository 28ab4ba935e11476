"""Contracts of the remote collaborators the pipeline depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from ..schemas import (
    Conversation,
    ConversationListItem,
    LanguageOption,
    Message,
    NewMessage,
)


@dataclass
class EngineTranslation:
    text: str
    detected_source_language: Optional[str]


class TranslationEngine(Protocol):
    async def translate(
        self, text: str, target_language: str, source_language: Optional[str] = None
    ) -> EngineTranslation:
        ...

    async def list_target_languages(self) -> List[LanguageOption]:
        ...


class CompletionEngine(Protocol):
    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        ...


class BlobStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its public URL."""
        ...


class ConversationStore(Protocol):
    async def create_conversation(
        self, doctor_language: str, patient_language: str
    ) -> Conversation:
        ...

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        ...

    async def list_conversations(self) -> List[ConversationListItem]:
        """Conversations newest first, each with its message count."""
        ...

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages; False when it did not exist."""
        ...

    async def list_messages(self, conversation_id: str) -> List[Message]:
        """Messages of one conversation in ascending commit order."""
        ...

    async def insert_message(self, message: NewMessage) -> Message:
        ...

    async def search_messages(self, query: str, limit: int) -> List[Message]:
        """Messages whose original or translated text contains ``query``, newest first."""
        ...
