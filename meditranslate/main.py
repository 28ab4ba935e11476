from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from .config import Settings, get_settings
from .database import SQLAlchemyStore
from .errors import (
    InvalidInput,
    NotFound,
    PersistenceFailed,
    PipelineError,
    ServiceUnavailable,
)
from .retry import call_with_retries
from .schemas import (
    ComposedMessage,
    Conversation,
    ConversationCreateRequest,
    ConversationDetail,
    ConversationListItem,
    LanguageOption,
    SearchResult,
    Summary,
    TranslateRequest,
    TranslationResult,
)
from .services import (
    ConversationLoader,
    LocalBlobStore,
    MessageAssembler,
    OpenAICompletionEngine,
    OpenAITranslationEngine,
    S3BlobStore,
    SearchService,
    SummaryService,
    TranslationService,
)
from .services.base import BlobStore, CompletionEngine, ConversationStore, TranslationEngine

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

app = FastAPI(
    title="MediTranslate",
    description="Bilingual doctor-patient conversations with translation, search, and clinical summaries.",
)

_settings = get_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(_settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if _settings.blob_backend == "local" and _settings.audio_base_url.startswith("/"):
    AUDIO_DIR = Path(_settings.audio_dir).expanduser().resolve()
    AUDIO_DIR.mkdir(parents=True, exist_ok=True)
    app.mount(_settings.audio_base_url, StaticFiles(directory=str(AUDIO_DIR)), name="audio")


STATUS_CODES = (
    (InvalidInput, 400),
    (NotFound, 404),
    (ServiceUnavailable, 503),
    (PersistenceFailed, 500),
)


def _status_for(exc: PipelineError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(exc, error_type):
            return status
    return 502


@app.exception_handler(PipelineError)
async def handle_pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
    status = _status_for(exc)
    if isinstance(exc, ServiceUnavailable):
        logger.error("%s %s: service unavailable: %s", request.method, request.url.path, exc)
    elif status >= 500:
        logger.warning("%s %s: %s failed: %s", request.method, request.url.path, exc.step, exc)
    return JSONResponse(status_code=status, content={"error": exc.message, "step": exc.step})


@lru_cache
def _store_cache(database_url: str) -> SQLAlchemyStore:
    return SQLAlchemyStore(database_url)


@lru_cache
def _translation_engine_cache(
    backend: str, api_key: Optional[str], model: str, nllb_model: str, timeout: float
) -> TranslationEngine:
    if backend == "nllb":
        from .services.nllb import NLLBTranslationEngine

        return NLLBTranslationEngine(nllb_model)
    if backend == "openai":
        return OpenAITranslationEngine(api_key=api_key, model=model, timeout=timeout)
    raise ServiceUnavailable(f"Unknown translation backend '{backend}'.", step="translation")


@lru_cache
def _completion_engine_cache(api_key: Optional[str], model: str, timeout: float) -> CompletionEngine:
    return OpenAICompletionEngine(api_key=api_key, model=model, timeout=timeout)


def _build_blob_store(settings: Settings) -> BlobStore:
    if settings.blob_backend == "s3":
        return S3BlobStore(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            public_base_url=settings.s3_public_base_url,
            timeout=settings.upload_timeout,
        )
    if settings.blob_backend == "local":
        return LocalBlobStore(settings.audio_dir, settings.audio_base_url)
    raise ServiceUnavailable(
        f"Unknown audio storage backend '{settings.blob_backend}'.", step="audio_upload"
    )


def get_store(settings: Settings = Depends(get_settings)) -> ConversationStore:
    return _store_cache(settings.database_url)


def get_translation_service(settings: Settings = Depends(get_settings)) -> TranslationService:
    engine = _translation_engine_cache(
        settings.translation_backend,
        settings.openai_api_key,
        settings.translation_model,
        settings.nllb_model,
        settings.translation_timeout,
    )
    return TranslationService(engine)


def get_blob_store(settings: Settings = Depends(get_settings)) -> BlobStore:
    return _build_blob_store(settings)


def get_loader(store: ConversationStore = Depends(get_store)) -> ConversationLoader:
    return ConversationLoader(store)


def get_assembler(
    store: ConversationStore = Depends(get_store),
    translator: TranslationService = Depends(get_translation_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> MessageAssembler:
    return MessageAssembler(store, translator, blob_store)


def get_search_service(store: ConversationStore = Depends(get_store)) -> SearchService:
    return SearchService(store)


def get_completion_engine(settings: Settings = Depends(get_settings)) -> CompletionEngine:
    return _completion_engine_cache(
        settings.openai_api_key, settings.summary_model, settings.summarization_timeout
    )


def get_summary_service(
    loader: ConversationLoader = Depends(get_loader),
    engine: CompletionEngine = Depends(get_completion_engine),
    settings: Settings = Depends(get_settings),
) -> SummaryService:
    return SummaryService(
        loader,
        engine,
        temperature=settings.summary_temperature,
        max_tokens=settings.summary_max_tokens,
    )


@app.get("/api/health")
async def healthcheck() -> dict:
    return {"status": "ok"}


@app.get("/api/languages", response_model=List[LanguageOption])
async def list_languages(
    translator: TranslationService = Depends(get_translation_service),
) -> List[LanguageOption]:
    return await translator.list_target_languages()


@app.post("/api/translate", response_model=TranslationResult)
async def translate_text(
    payload: TranslateRequest,
    settings: Settings = Depends(get_settings),
    translator: TranslationService = Depends(get_translation_service),
) -> TranslationResult:
    return await call_with_retries(
        lambda: translator.translate(
            payload.text, payload.target_language, payload.source_language
        ),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        label="translate",
    )


@app.post("/api/conversations", response_model=Conversation, status_code=201)
async def create_conversation(
    payload: ConversationCreateRequest,
    loader: ConversationLoader = Depends(get_loader),
) -> Conversation:
    return await loader.create_conversation(payload.doctor_language, payload.patient_language)


@app.get("/api/conversations", response_model=List[ConversationListItem])
async def list_conversations(
    loader: ConversationLoader = Depends(get_loader),
) -> List[ConversationListItem]:
    return await loader.list_conversations()


@app.get("/api/conversations/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    conversation_id: str, loader: ConversationLoader = Depends(get_loader)
) -> ConversationDetail:
    return await loader.load_conversation(conversation_id)


@app.delete("/api/conversations/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str, loader: ConversationLoader = Depends(get_loader)
) -> Response:
    await loader.delete_conversation(conversation_id)
    return Response(status_code=204)


@app.post(
    "/api/conversations/{conversation_id}/messages",
    response_model=ComposedMessage,
    status_code=201,
)
async def create_message(
    conversation_id: str,
    sender_role: str = Form(""),
    original_text: Optional[str] = Form(None),
    target_language: Optional[str] = Form(None),
    source_language: Optional[str] = Form(None),
    audio: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
    assembler: MessageAssembler = Depends(get_assembler),
) -> ComposedMessage:
    audio_bytes: Optional[bytes] = None
    content_type = "audio/webm"
    if audio is not None:
        content_type = audio.content_type or "application/octet-stream"
        if not content_type.startswith("audio/"):
            raise HTTPException(status_code=415, detail="Only audio files are allowed.")
        audio_bytes = await audio.read()
        if len(audio_bytes) > settings.max_audio_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Audio exceeds the {settings.max_audio_bytes} byte limit.",
            )

    return await call_with_retries(
        lambda: assembler.compose_message(
            conversation_id,
            sender_role,
            original_text=original_text,
            target_language=target_language,
            source_language=source_language,
            audio=audio_bytes,
            audio_content_type=content_type,
        ),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        label="compose_message",
    )


@app.get("/api/search", response_model=List[SearchResult])
async def search_messages(
    q: str = "", search: SearchService = Depends(get_search_service)
) -> List[SearchResult]:
    return await search.search(q)


@app.post("/api/conversations/{conversation_id}/summary", response_model=Summary)
async def summarise_conversation(
    conversation_id: str,
    settings: Settings = Depends(get_settings),
    summariser: SummaryService = Depends(get_summary_service),
) -> Summary:
    return await call_with_retries(
        lambda: summariser.summarise(conversation_id),
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        label="summarise",
    )
