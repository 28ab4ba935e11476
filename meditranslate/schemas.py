from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

SENDER_ROLES = ("doctor", "patient")


class Conversation(BaseModel):
    id: str = Field(description="Opaque unique identifier.")
    doctor_language: str = Field(description="Language code spoken by the doctor.")
    patient_language: str = Field(description="Language code spoken by the patient.")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(frozen=True)


class ConversationListItem(Conversation):
    message_count: int = Field(default=0, description="Number of owned messages.")


class NewMessage(BaseModel):
    """Message fields supplied by the caller; identity and timestamp come from the store."""

    conversation_id: str
    sender_role: str
    original_text: Optional[str] = None
    translated_text: Optional[str] = None
    audio_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Message(NewMessage):
    id: str = Field(description="Identifier assigned by the store.")
    created_at: datetime = Field(description="Commit timestamp assigned by the store.")


class ComposedMessage(Message):
    """A freshly stored message plus what the translation engine reported about it."""

    detected_language: Optional[str] = Field(
        default=None, description="Source language reported for the original text."
    )


class ConversationDetail(BaseModel):
    conversation: Conversation
    messages: List[Message] = Field(description="Messages in ascending commit order.")
    message_count: int
    languages: List[str] = Field(description="Doctor and patient language codes.")


class TranslationResult(BaseModel):
    translated_text: str
    detected_language: Optional[str] = Field(
        default=None, description="Source language reported by the engine."
    )


class LanguageOption(BaseModel):
    code: str
    name: str


class Summary(BaseModel):
    symptoms: List[str] = Field(default_factory=list)
    diagnoses: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    followup_actions: List[str] = Field(default_factory=list)
    full_text: str = ""


class SearchResult(BaseModel):
    id: str = Field(description="Identifier of the matching message.")
    conversation_id: str
    sender_role: str
    created_at: datetime
    original_text: Optional[str] = None
    translated_text: Optional[str] = None
    text: Optional[str] = Field(description="Display text, preferring the original utterance.")
    context: str = Field(description="Window around the first match, empty when not found.")


class TranslateRequest(BaseModel):
    text: str = ""
    target_language: str
    source_language: Optional[str] = None


class ConversationCreateRequest(BaseModel):
    doctor_language: str
    patient_language: str
