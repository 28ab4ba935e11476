from __future__ import annotations

import logging
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from ..errors import PipelineError, ServiceUnavailable, SummarizationFailed
from ..schemas import Summary
from .base import CompletionEngine
from .conversation import ConversationFormatter, ConversationLoader
from .summary_parser import parse_summary_or_fallback

logger = logging.getLogger(__name__)

EMPTY_SUMMARY_TEXT = "No messages in conversation yet."

SUMMARY_PROMPT_TEMPLATE = """You are a medical AI assistant. Analyze the following doctor-patient conversation and extract key medical information.

Conversation:
{transcript}

Please provide a structured summary in JSON format with exactly the following fields:
- symptoms: Array of short strings naming the mentioned symptoms
- diagnoses: Array of short strings naming mentioned diagnoses or suspected conditions
- medications: Array of short strings naming mentioned medications or treatments
- followup_actions: Array of short strings naming recommended follow-up actions
- full_text: Brief narrative summary of the consultation

Return ONLY valid JSON, no additional text."""


class OpenAICompletionEngine:
    """Single-prompt chat completion against the OpenAI API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
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
                    "OpenAI API key is not configured; summarisation is unavailable.",
                    step="summarization",
                )
            self._client = AsyncOpenAI(
                api_key=self.api_key, timeout=self.timeout, max_retries=0
            )
        return self._client

    async def complete(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            raise SummarizationFailed(f"Summary request failed: {exc}") from exc
        if not response.choices:
            raise SummarizationFailed("Summary engine returned no choices.")
        return response.choices[0].message.content or ""


class SummaryService:
    """Derive a structured clinical summary from a conversation's messages."""

    def __init__(
        self,
        loader: ConversationLoader,
        engine: Optional[CompletionEngine],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        formatter: Optional[ConversationFormatter] = None,
    ) -> None:
        self.loader = loader
        self.engine = engine
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.formatter = formatter or ConversationFormatter()

    @staticmethod
    def empty_summary() -> Summary:
        return Summary(full_text=EMPTY_SUMMARY_TEXT)

    @staticmethod
    def build_prompt(transcript: str) -> str:
        return SUMMARY_PROMPT_TEMPLATE.format(transcript=transcript)

    async def summarise(self, conversation_id: str) -> Summary:
        detail = await self.loader.load_conversation(conversation_id)
        if not detail.messages:
            return self.empty_summary()

        if self.engine is None:
            logger.error("Summary requested but no summarisation engine is configured")
            raise ServiceUnavailable(
                "No summarisation engine is configured.", step="summarization"
            )

        transcript = self.formatter.render_transcript(detail.messages)
        prompt = self.build_prompt(transcript)
        try:
            raw = await self.engine.complete(
                prompt, temperature=self.temperature, max_tokens=self.max_tokens
            )
        except ServiceUnavailable as exc:
            logger.error("Summarisation engine unavailable: %s", exc)
            raise
        except PipelineError as exc:
            logger.warning("Summary for %s failed: %s", conversation_id, exc)
            raise
        except Exception as exc:
            logger.warning("Summary for %s failed: %s", conversation_id, exc)
            raise SummarizationFailed(f"Summary generation failed: {exc}") from exc

        logger.info(
            "Summarised conversation %s (%d messages)", conversation_id, len(detail.messages)
        )
        return parse_summary_or_fallback(raw)
