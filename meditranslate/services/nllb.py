from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from transformers import AutoModelForSeq2SeqLM, AutoTokenizer

from ..errors import ServiceUnavailable, TranslationFailed
from ..schemas import LanguageOption
from .base import EngineTranslation
from .translator import LANGUAGE_NAMES

logger = logging.getLogger(__name__)


LANGUAGE_CODE_MAP = {
    "ar": "arb_Arab",
    "de": "deu_Latn",
    "en": "eng_Latn",
    "es": "spa_Latn",
    "fr": "fra_Latn",
    "hi": "hin_Deva",
    "it": "ita_Latn",
    "ja": "jpn_Jpan",
    "ko": "kor_Hang",
    "pl": "pol_Latn",
    "pt": "por_Latn",
    "ru": "rus_Cyrl",
    "tl": "tgl_Latn",
    "uk": "ukr_Cyrl",
    "vi": "vie_Latn",
    "zh": "zho_Hans",
    "zh-cn": "zho_Hans",
    "zh-tw": "zho_Hant",
}


class NLLBTranslationEngine:
    """Local translation engine around an NLLB-200 checkpoint.

    NLLB has no language identification, so the reported source language is
    whatever the caller supplied.
    """

    def __init__(self, model_name: Optional[str]) -> None:
        self.model_name = model_name
        self._tokenizer = None
        self._model = None

    def _load(self):
        if self._model is None or self._tokenizer is None:
            if not self.model_name:
                raise ServiceUnavailable(
                    "No NLLB model is configured; translation is unavailable.",
                    step="translation",
                )
            logger.info("Loading translation model '%s'", self.model_name)
            try:
                self._tokenizer = AutoTokenizer.from_pretrained(self.model_name)
                self._model = AutoModelForSeq2SeqLM.from_pretrained(self.model_name)
            except OSError as exc:
                raise ServiceUnavailable(
                    f"Translation model '{self.model_name}' could not be loaded: {exc}",
                    step="translation",
                ) from exc
        return self._tokenizer, self._model

    @staticmethod
    def _resolve_lang(code: Optional[str]) -> Optional[str]:
        if not code:
            return None
        normalised = code.lower().replace("_", "-")
        return LANGUAGE_CODE_MAP.get(normalised, code)

    def _token_id(self, tokenizer, lang: str) -> int:
        token_id = tokenizer.convert_tokens_to_ids(lang)
        if token_id is None or token_id == tokenizer.unk_token_id:
            raise TranslationFailed(f"Unsupported language code '{lang}'.")
        return token_id

    def _translate_sync(
        self, text: str, target_language: str, source_language: Optional[str]
    ) -> str:
        tokenizer, model = self._load()
        tgt_lang = self._resolve_lang(target_language)
        src_lang = self._resolve_lang(source_language)

        forced_bos = self._token_id(tokenizer, tgt_lang)
        if src_lang:
            self._token_id(tokenizer, src_lang)
            tokenizer.src_lang = src_lang
        inputs = tokenizer(text, return_tensors="pt", truncation=True, max_length=512)
        generated = model.generate(**inputs, forced_bos_token_id=forced_bos, max_length=768)
        return tokenizer.batch_decode(generated, skip_special_tokens=True)[0]

    async def translate(
        self, text: str, target_language: str, source_language: Optional[str] = None
    ) -> EngineTranslation:
        translated = await asyncio.to_thread(
            self._translate_sync, text, target_language, source_language
        )
        return EngineTranslation(text=translated, detected_source_language=source_language)

    async def list_target_languages(self) -> List[LanguageOption]:
        return [
            LanguageOption(code=code, name=name)
            for code, name in LANGUAGE_NAMES.items()
            if code in LANGUAGE_CODE_MAP
        ]
