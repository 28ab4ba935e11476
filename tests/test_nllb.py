import asyncio

import pytest

pytest.importorskip("transformers")

from meditranslate.errors import ServiceUnavailable, TranslationFailed  # noqa: E402
from meditranslate.services.nllb import NLLBTranslationEngine  # noqa: E402


class FakeTokenizer:
    unk_token_id = 3
    ids = {"eng_Latn": 10, "spa_Latn": 11, "fra_Latn": 12}

    def __init__(self):
        self.src_lang = None
        self.encoded = []

    def convert_tokens_to_ids(self, token):
        return self.ids.get(token, self.unk_token_id)

    def __call__(self, text, return_tensors=None, truncation=False, max_length=None):
        self.encoded.append(text)
        return {"input_ids": [[1, 2, 3]]}

    def batch_decode(self, generated, skip_special_tokens=False):
        return ["Me duele la cabeza"]


class FakeModel:
    def __init__(self):
        self.kwargs = None

    def generate(self, **kwargs):
        self.kwargs = kwargs
        return [[11, 4, 5]]


def _engine():
    engine = NLLBTranslationEngine("facebook/nllb-200-distilled-600M")
    engine._tokenizer = FakeTokenizer()
    engine._model = FakeModel()
    return engine


def test_translate_maps_iso_codes_to_nllb_codes():
    engine = _engine()

    result = asyncio.run(engine.translate("My head hurts", "es", "en"))

    assert result.text == "Me duele la cabeza"
    assert result.detected_source_language == "en"
    assert engine._tokenizer.src_lang == "eng_Latn"
    assert engine._model.kwargs["forced_bos_token_id"] == 11


def test_without_source_language_nothing_is_detected():
    result = asyncio.run(_engine().translate("My head hurts", "es"))

    assert result.detected_source_language is None


def test_unknown_target_language_fails():
    with pytest.raises(TranslationFailed):
        asyncio.run(_engine().translate("My head hurts", "xx"))


def test_missing_model_name_is_unavailable():
    with pytest.raises(ServiceUnavailable):
        asyncio.run(NLLBTranslationEngine("").translate("hi", "es"))


def test_target_languages_are_limited_to_mapped_codes():
    codes = {option.code for option in asyncio.run(_engine().list_target_languages())}

    assert {"en", "es", "fr"} <= codes
