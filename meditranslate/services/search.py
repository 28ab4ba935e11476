from __future__ import annotations

import logging
from typing import List

from ..schemas import Message, SearchResult
from .base import ConversationStore

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
CONTEXT_CHARS = 50


def extract_context(text: str, query: str, window: int = CONTEXT_CHARS) -> str:
    """Return up to ``window`` characters either side of the first match of ``query``.

    Matching is case-insensitive; an empty string is returned when ``query``
    does not occur in ``text``.
    """
    index = text.lower().find(query.lower())
    if index == -1:
        return ""
    start = max(0, index - window)
    end = min(len(text), index + len(query) + window)
    return text[start:end]


class SearchService:
    """Substring search over both language fields of every stored message."""

    def __init__(self, store: ConversationStore, limit: int = SEARCH_LIMIT) -> None:
        self.store = store
        self.limit = limit

    @staticmethod
    def to_result(message: Message, query: str) -> SearchResult:
        # The snippet comes from the display text only, even if the match was
        # in the other language field.
        text = message.original_text or message.translated_text or ""
        return SearchResult(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_role=message.sender_role,
            created_at=message.created_at,
            original_text=message.original_text,
            translated_text=message.translated_text,
            text=message.original_text or message.translated_text,
            context=extract_context(text, query),
        )

    async def search(self, query: str) -> List[SearchResult]:
        query = (query or "").strip()
        if not query:
            return []

        messages = await self.store.search_messages(query, self.limit)
        messages = sorted(messages, key=lambda message: message.created_at, reverse=True)
        results = [self.to_result(message, query) for message in messages[: self.limit]]
        logger.info("Search for %r returned %d results", query, len(results))
        return results
