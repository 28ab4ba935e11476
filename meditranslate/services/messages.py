from __future__ import annotations

import logging
from typing import Optional

from ..errors import InvalidInput, NotFound, PipelineError, ServiceUnavailable, UploadFailed
from ..schemas import SENDER_ROLES, ComposedMessage, Conversation, NewMessage
from .base import BlobStore, ConversationStore
from .storage import audio_key
from .translator import TranslationService

logger = logging.getLogger(__name__)


class MessageAssembler:
    """Build a dual-language message and commit it, all or nothing.

    Translation and audio upload both finish before the record is handed to
    the store, so a failure in either leaves nothing persisted.
    """

    def __init__(
        self,
        store: ConversationStore,
        translator: TranslationService,
        blob_store: Optional[BlobStore] = None,
    ) -> None:
        self.store = store
        self.translator = translator
        self.blob_store = blob_store

    @staticmethod
    def _languages(
        conversation: Conversation,
        sender_role: str,
        target_language: Optional[str],
        source_language: Optional[str],
    ) -> tuple[str, str]:
        if sender_role == "doctor":
            own, other = conversation.doctor_language, conversation.patient_language
        else:
            own, other = conversation.patient_language, conversation.doctor_language
        return source_language or own, target_language or other

    async def _upload_audio(self, conversation_id: str, audio: bytes, content_type: str) -> str:
        if self.blob_store is None:
            logger.error("Audio received but no blob store is configured")
            raise ServiceUnavailable("No audio store is configured.", step="audio_upload")
        key = audio_key(conversation_id)
        try:
            return await self.blob_store.put(key, audio, content_type)
        except PipelineError:
            raise
        except Exception as exc:
            logger.warning("Audio upload for %s failed: %s", conversation_id, exc)
            raise UploadFailed(f"Audio upload failed: {exc}") from exc

    async def compose_message(
        self,
        conversation_id: str,
        sender_role: str,
        original_text: Optional[str] = None,
        target_language: Optional[str] = None,
        source_language: Optional[str] = None,
        audio: Optional[bytes] = None,
        audio_content_type: str = "audio/webm",
    ) -> ComposedMessage:
        if not conversation_id or not sender_role:
            raise InvalidInput("conversation_id and sender_role are required.")
        if sender_role not in SENDER_ROLES:
            raise InvalidInput(
                f"sender_role must be one of {', '.join(SENDER_ROLES)}; got '{sender_role}'."
            )
        text = (original_text or "").strip()
        if not text and not audio:
            raise InvalidInput("A message needs text or audio.")

        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFound(f"Conversation '{conversation_id}' not found.")
        source, target = self._languages(
            conversation, sender_role, target_language, source_language
        )

        translated_text: Optional[str] = None
        detected_language: Optional[str] = None
        if text:
            result = await self.translator.translate(text, target, source)
            translated_text = result.translated_text
            detected_language = result.detected_language

        audio_url: Optional[str] = None
        if audio:
            audio_url = await self._upload_audio(conversation_id, audio, audio_content_type)

        stored = await self.store.insert_message(
            NewMessage(
                conversation_id=conversation_id,
                sender_role=sender_role,
                original_text=text or None,
                translated_text=translated_text,
                audio_url=audio_url,
            )
        )
        logger.info(
            "Stored %s message %s in conversation %s (%s -> %s, detected=%s, audio=%s)",
            sender_role,
            stored.id,
            conversation_id,
            source,
            target,
            detected_language,
            bool(audio_url),
        )
        return ComposedMessage(**stored.model_dump(), detected_language=detected_language)
