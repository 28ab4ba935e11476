"""Service layer components powering the API."""

from .conversation import ConversationFormatter, ConversationLoader
from .messages import MessageAssembler
from .search import SearchService
from .storage import LocalBlobStore, S3BlobStore
from .summarizer import OpenAICompletionEngine, SummaryService
from .translator import OpenAITranslationEngine, TranslationService

__all__ = [
    "ConversationFormatter",
    "ConversationLoader",
    "LocalBlobStore",
    "MessageAssembler",
    "OpenAICompletionEngine",
    "OpenAITranslationEngine",
    "S3BlobStore",
    "SearchService",
    "SummaryService",
    "TranslationService",
]
