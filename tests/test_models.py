"""Tests for models module."""

import pytest

from webwhispr.lib.models import (
    DEFAULT_LANGUAGE,
    DEFAULT_MODEL_SIZE,
    LANGUAGE_MAP,
    MODEL_SIZES,
    LanguageInfo,
    get_model_name,
    get_supported_languages,
    get_transcribe_language,
    is_language_supported,
    is_model_size_supported,
)


class TestLanguageMap:
    """Tests for language map functionality."""

    def test_has_english_and_multilingual(self):
        """English and auto-detect are always offered."""
        assert "en" in LANGUAGE_MAP
        assert "multilingual" in LANGUAGE_MAP

    def test_language_info_structure(self):
        for code, info in LANGUAGE_MAP.items():
            assert isinstance(info, LanguageInfo)
            assert info.code == code
            assert info.name
            assert info.native_name

    def test_supported_languages_payload(self):
        """API payload uses camelCase keys."""
        result = get_supported_languages()

        assert len(result) == len(LANGUAGE_MAP)
        for item in result:
            assert {"code", "name", "nativeName", "rtl"} <= item.keys()


class TestSupportChecks:
    """Tests for language and model-size validation."""

    def test_language_case_insensitive(self):
        assert is_language_supported("EN")
        assert is_language_supported("Multilingual")
        assert not is_language_supported("xx")

    @pytest.mark.parametrize("size", MODEL_SIZES)
    def test_model_sizes(self, size):
        assert is_model_size_supported(size)

    def test_large_model_not_offered(self):
        assert not is_model_size_supported("large-v3")

    def test_defaults(self):
        """Defaults match what a fresh install offers."""
        assert DEFAULT_LANGUAGE == "en"
        assert DEFAULT_MODEL_SIZE == "small"


class TestGetModelName:
    """Tests for Whisper checkpoint selection."""

    def test_english_uses_english_only_checkpoint(self):
        assert get_model_name("small", "en") == "small.en"
        assert get_model_name("tiny", "EN") == "tiny.en"

    def test_other_languages_use_multilingual_checkpoint(self):
        assert get_model_name("base", "fr") == "base"
        assert get_model_name("medium", "multilingual") == "medium"

    def test_unknown_size_falls_back_to_default(self):
        assert get_model_name("gigantic", "de") == DEFAULT_MODEL_SIZE


class TestGetTranscribeLanguage:
    """Tests for the language hint passed to the engine."""

    def test_specific_language(self):
        assert get_transcribe_language("fr") == "fr"
        assert get_transcribe_language("JA") == "ja"

    def test_multilingual_auto_detects(self):
        assert get_transcribe_language("multilingual") is None

    def test_unknown_language_auto_detects(self):
        assert get_transcribe_language("klingon") is None
