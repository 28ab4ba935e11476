from __future__ import annotations

import json
import logging
from typing import List, Optional

from openai import AsyncOpenAI, OpenAIError

from ..errors import (
    InvalidInput,
    PipelineError,
    ServiceUnavailable,
    TranslationFailed,
)
from ..schemas import LanguageOption, TranslationResult
from .base import EngineTranslation, TranslationEngine

logger = logging.getLogger(__name__)


LANGUAGE_NAMES = {
    "ar": "Arabic",
    "de": "German",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "hi": "Hindi",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "pl": "Polish",
    "pt": "Portuguese",
    "ru": "Russian",
    "tl": "Tagalog",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
    "zh": "Chinese",
}

TRANSLATION_SYSTEM_PROMPT = (
    "You are a medical interpreter translating between a doctor and a patient. "
    "Translate faithfully, keep medical terms precise and do not add explanations. "
    'Reply with a JSON object {"translated_text": "...", "detected_language": "<ISO 639-1 code>"} '
    "where detected_language is the language of the source text."
)


def language_name(code: Optional[str]) -> str:
    if not code:
        return "the detected language"
    return LANGUAGE_NAMES.get(code.lower().split("-")[0], code)


class OpenAITranslationEngine:
    """Chat-model translation engine; detects the source language when none is given."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ServiceUnavailable(
                    "OpenAI API key is not configured; translation is unavailable.",
                    step="translation",
                )
            # Retries belong to the caller.
            self._client = AsyncOpenAI(
                api_key=self.api_key, timeout=self.timeout, max_retries=0
            )
        return self._client

    async def translate(
        self, text: str, target_language: str, source_language: Optional[str] = None
    ) -> EngineTranslation:
        client = self._get_client()
        source_hint = f"from {language_name(source_language)} " if source_language else ""
        prompt = (
            f"Translate the following text {source_hint}into "
            f"{language_name(target_language)} ({target_language}).\n\nText:\n{text}"
        )
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": TRANSLATION_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise TranslationFailed(f"Translation request failed: {exc}") from exc

        content = response.choices[0].message.content or ""
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise TranslationFailed("Translation engine returned malformed output.") from exc

        translated = payload.get("translated_text") if isinstance(payload, dict) else None
        if not isinstance(translated, str):
            raise TranslationFailed("Translation engine response lacks translated_text.")
        detected = payload.get("detected_language") or source_language
        return EngineTranslation(text=translated, detected_source_language=detected)

    async def list_target_languages(self) -> List[LanguageOption]:
        return [LanguageOption(code=code, name=name) for code, name in LANGUAGE_NAMES.items()]


class TranslationService:
    """Turn one utterance into its counterpart in the other party's language."""

    def __init__(self, engine: Optional[TranslationEngine]) -> None:
        self.engine = engine

    def _require_engine(self) -> TranslationEngine:
        if self.engine is None:
            logger.error("Translation requested but no translation engine is configured")
            raise ServiceUnavailable(
                "No translation engine is configured.", step="translation"
            )
        return self.engine

    async def translate(
        self, text: Optional[str], target_language: str, source_language: Optional[str] = None
    ) -> TranslationResult:
        if not target_language:
            raise InvalidInput("target_language is required.")
        if not text or not text.strip():
            return TranslationResult(translated_text="", detected_language=source_language)

        engine = self._require_engine()
        try:
            result = await engine.translate(text.strip(), target_language, source_language)
        except ServiceUnavailable as exc:
            logger.error("Translation engine unavailable: %s", exc)
            raise
        except PipelineError as exc:
            logger.warning("Translation to '%s' failed: %s", target_language, exc)
            raise
        except Exception as exc:
            logger.warning("Translation to '%s' failed: %s", target_language, exc)
            raise TranslationFailed(f"Translation failed: {exc}") from exc

        logger.debug(
            "Translated %d chars %s -> %s",
            len(text),
            result.detected_source_language or source_language or "auto",
            target_language,
        )
        return TranslationResult(
            translated_text=result.text,
            detected_language=result.detected_source_language or source_language,
        )

    async def list_target_languages(self) -> List[LanguageOption]:
        engine = self._require_engine()
        try:
            return await engine.list_target_languages()
        except PipelineError:
            raise
        except Exception as exc:
            raise TranslationFailed(f"Could not list target languages: {exc}") from exc
