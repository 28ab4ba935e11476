from __future__ import annotations

import logging
from typing import Iterable, List

from ..errors import InvalidInput, NotFound
from ..schemas import Conversation, ConversationDetail, ConversationListItem, Message
from .base import ConversationStore

logger = logging.getLogger(__name__)


class ConversationFormatter:
    """Render stored messages as role-labelled dialogue."""

    ROLE_LABELS = {"doctor": "Doctor", "patient": "Patient"}
    TURN_SEPARATOR = "\n\n"

    def label(self, sender_role: str) -> str:
        return self.ROLE_LABELS.get(sender_role, "Patient")

    def render_turn(self, message: Message) -> str:
        # Audio-only turns keep their slot with an empty utterance.
        return f"{self.label(message.sender_role)}: {message.original_text or ''}"

    def render_transcript(self, messages: Iterable[Message]) -> str:
        return self.TURN_SEPARATOR.join(self.render_turn(message) for message in messages)


class ConversationLoader:
    """Read side of the conversation store plus conversation lifecycle."""

    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    async def create_conversation(
        self, doctor_language: str, patient_language: str
    ) -> Conversation:
        doctor_language = (doctor_language or "").strip()
        patient_language = (patient_language or "").strip()
        if not doctor_language or not patient_language:
            raise InvalidInput("Both doctor_language and patient_language are required.")
        conversation = await self.store.create_conversation(doctor_language, patient_language)
        logger.info(
            "Created conversation %s (%s <-> %s)",
            conversation.id,
            doctor_language,
            patient_language,
        )
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        if not conversation_id:
            raise InvalidInput("conversation_id is required.")
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFound(f"Conversation '{conversation_id}' not found.")
        return conversation

    async def list_messages(self, conversation_id: str) -> List[Message]:
        messages = await self.store.list_messages(conversation_id)
        # Stable sort: equal timestamps keep the store's insertion order.
        return sorted(messages, key=lambda message: message.created_at)

    async def load_conversation(self, conversation_id: str) -> ConversationDetail:
        conversation = await self.get_conversation(conversation_id)
        messages = await self.list_messages(conversation_id)
        return ConversationDetail(
            conversation=conversation,
            messages=messages,
            message_count=len(messages),
            languages=[conversation.doctor_language, conversation.patient_language],
        )

    async def list_conversations(self) -> List[ConversationListItem]:
        conversations = await self.store.list_conversations()
        return sorted(conversations, key=lambda item: item.created_at, reverse=True)

    async def delete_conversation(self, conversation_id: str) -> None:
        if not conversation_id:
            raise InvalidInput("conversation_id is required.")
        if not await self.store.delete_conversation(conversation_id):
            raise NotFound(f"Conversation '{conversation_id}' not found.")
        logger.info("Deleted conversation %s", conversation_id)
