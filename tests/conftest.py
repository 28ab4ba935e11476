from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

# Keep the app module from touching the working directory on import.
_SCRATCH = tempfile.mkdtemp(prefix="meditranslate-tests-")
os.environ.setdefault("MEDITRANSLATE_AUDIO_DIR", os.path.join(_SCRATCH, "audio"))
os.environ.setdefault(
    "MEDITRANSLATE_DATABASE_URL", f"sqlite:///{os.path.join(_SCRATCH, 'app.db')}"
)

from meditranslate.config import Settings, get_settings  # noqa: E402
from meditranslate.schemas import (  # noqa: E402
    Conversation,
    ConversationListItem,
    LanguageOption,
    Message,
    NewMessage,
)
from meditranslate.services.base import EngineTranslation  # noqa: E402
from meditranslate.services.translator import TranslationService  # noqa: E402

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class InMemoryStore:
    """Conversation store double; messages come back in insertion order."""

    def __init__(self) -> None:
        self.conversations: Dict[str, Conversation] = {}
        self.messages: List[Message] = []
        self.search_calls: List[tuple] = []
        self.insert_calls = 0
        self._counter = 0

    def _next_time(self) -> datetime:
        self._counter += 1
        return BASE_TIME + timedelta(seconds=self._counter)

    def add_conversation(
        self, doctor_language: str = "en", patient_language: str = "es", created_at=None
    ) -> Conversation:
        created_at = created_at or self._next_time()
        conversation = Conversation(
            id=f"conv-{len(self.conversations) + 1}",
            doctor_language=doctor_language,
            patient_language=patient_language,
            created_at=created_at,
            updated_at=created_at,
        )
        self.conversations[conversation.id] = conversation
        return conversation

    def add_message(
        self,
        conversation_id: str,
        sender_role: str,
        original_text: Optional[str],
        translated_text: Optional[str] = None,
        audio_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Message:
        message = Message(
            id=f"msg-{len(self.messages) + 1}",
            conversation_id=conversation_id,
            sender_role=sender_role,
            original_text=original_text,
            translated_text=translated_text,
            audio_url=audio_url,
            created_at=created_at or self._next_time(),
        )
        self.messages.append(message)
        return message

    async def create_conversation(self, doctor_language: str, patient_language: str) -> Conversation:
        return self.add_conversation(doctor_language, patient_language)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self.conversations.get(conversation_id)

    async def list_conversations(self) -> List[ConversationListItem]:
        return [
            ConversationListItem(
                **conversation.model_dump(),
                message_count=sum(
                    1 for m in self.messages if m.conversation_id == conversation.id
                ),
            )
            for conversation in self.conversations.values()
        ]

    async def delete_conversation(self, conversation_id: str) -> bool:
        if self.conversations.pop(conversation_id, None) is None:
            return False
        self.messages = [m for m in self.messages if m.conversation_id != conversation_id]
        return True

    async def list_messages(self, conversation_id: str) -> List[Message]:
        return [m for m in self.messages if m.conversation_id == conversation_id]

    async def insert_message(self, message: NewMessage) -> Message:
        self.insert_calls += 1
        return self.add_message(
            message.conversation_id,
            message.sender_role,
            message.original_text,
            message.translated_text,
            message.audio_url,
        )

    async def search_messages(self, query: str, limit: int) -> List[Message]:
        self.search_calls.append((query, limit))
        needle = query.lower()
        matches = [
            m
            for m in self.messages
            if needle in (m.original_text or "").lower()
            or needle in (m.translated_text or "").lower()
        ]
        matches.sort(key=lambda m: m.created_at, reverse=True)
        return matches[:limit]


class FakeTranslationEngine:
    def __init__(self, error: Optional[Exception] = None, detected: str = "en") -> None:
        self.error = error
        self.detected = detected
        self.calls: List[tuple] = []

    async def translate(self, text, target_language, source_language=None) -> EngineTranslation:
        self.calls.append((text, target_language, source_language))
        if self.error is not None:
            raise self.error
        return EngineTranslation(
            text=f"[{target_language}] {text}",
            detected_source_language=source_language or self.detected,
        )

    async def list_target_languages(self) -> List[LanguageOption]:
        return [LanguageOption(code="en", name="English"), LanguageOption(code="es", name="Spanish")]


class FakeCompletionEngine:
    def __init__(self, response: str = "", error: Optional[Exception] = None) -> None:
        self.response = response
        self.error = error
        self.calls: List[dict] = []

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return self.response


class FakeBlobStore:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.puts: List[tuple] = []

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.error is not None:
            raise self.error
        self.puts.append((key, data, content_type))
        return f"https://blobs.test/{key}"


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def conversation(store: InMemoryStore) -> Conversation:
    return store.add_conversation("en", "es")


@pytest.fixture
def translation_engine() -> FakeTranslationEngine:
    return FakeTranslationEngine()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


SUMMARY_RESPONSE = json.dumps(
    {
        "symptoms": ["fever"],
        "diagnoses": [],
        "medications": ["paracetamol"],
        "followup_actions": ["rest"],
        "full_text": "Fever for three days.",
    }
)


class Harness:
    """Test doubles wired into the FastAPI app through dependency overrides."""

    def __init__(self) -> None:
        self.store = InMemoryStore()
        self.engine = FakeTranslationEngine()
        self.blobs = FakeBlobStore()
        self.completion = FakeCompletionEngine(response=f"```json\n{SUMMARY_RESPONSE}\n```")
        self.settings = Settings(retry_attempts=2, retry_base_delay=0.0)
        self.translation_service = TranslationService(self.engine)


@pytest.fixture
def harness():
    from meditranslate import main

    harness = Harness()
    main.app.dependency_overrides.update(
        {
            get_settings: lambda: harness.settings,
            main.get_store: lambda: harness.store,
            main.get_translation_service: lambda: harness.translation_service,
            main.get_blob_store: lambda: harness.blobs,
            main.get_completion_engine: lambda: harness.completion,
        }
    )
    yield harness
    main.app.dependency_overrides.clear()
