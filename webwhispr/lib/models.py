"""Languages, model sizes and model-name mappings for WebWhispr."""

from dataclasses import dataclass
from typing import Optional

from .constants import DEFAULT_LANGUAGE, DEFAULT_MODEL_SIZE


@dataclass
class LanguageInfo:
    """Information about a supported dictation language."""

    code: str
    name: str
    native_name: str
    rtl: bool = False


# "multilingual" is not a language: it selects the multilingual model with
# automatic language detection.
LANGUAGE_MAP: dict[str, LanguageInfo] = {
    "en": LanguageInfo(code="en", name="English", native_name="English"),
    "multilingual": LanguageInfo(
        code="multilingual", name="Auto-detect", native_name="Auto-detect"
    ),
    "es": LanguageInfo(code="es", name="Spanish", native_name="Español"),
    "fr": LanguageInfo(code="fr", name="French", native_name="Français"),
    "de": LanguageInfo(code="de", name="German", native_name="Deutsch"),
    "it": LanguageInfo(code="it", name="Italian", native_name="Italiano"),
    "pt": LanguageInfo(code="pt", name="Portuguese", native_name="Português"),
    "nl": LanguageInfo(code="nl", name="Dutch", native_name="Nederlands"),
    "ja": LanguageInfo(code="ja", name="Japanese", native_name="日本語"),
    "zh": LanguageInfo(code="zh", name="Chinese", native_name="中文"),
}

MODEL_SIZES: tuple[str, ...] = ("tiny", "base", "small", "medium")

__all__ = [
    "DEFAULT_LANGUAGE",
    "DEFAULT_MODEL_SIZE",
    "LANGUAGE_MAP",
    "LanguageInfo",
    "MODEL_SIZES",
    "get_model_name",
    "get_supported_languages",
    "get_transcribe_language",
    "is_language_supported",
    "is_model_size_supported",
]


def get_supported_languages() -> list[dict]:
    """Get list of supported languages for API response."""
    return [
        {
            "code": lang.code,
            "name": lang.name,
            "nativeName": lang.native_name,
            "rtl": lang.rtl,
        }
        for lang in LANGUAGE_MAP.values()
    ]


def is_language_supported(lang_code: str) -> bool:
    return lang_code.lower() in LANGUAGE_MAP


def is_model_size_supported(model_size: str) -> bool:
    return model_size.lower() in MODEL_SIZES


def get_model_name(model_size: str, language: str) -> str:
    """Whisper checkpoint for a size/language pair.

    English dictation uses the English-only ``.en`` checkpoints, which are
    more accurate at the same size; every other choice uses the multilingual
    checkpoint.

    Examples:
        >>> get_model_name("small", "en")
        'small.en'
        >>> get_model_name("small", "fr")
        'small'
    """
    size = model_size.lower() if is_model_size_supported(model_size) else DEFAULT_MODEL_SIZE
    if language.lower() == "en":
        return f"{size}.en"
    return size


def get_transcribe_language(language: str) -> Optional[str]:
    """Language hint for the engine; None asks it to auto-detect."""
    code = language.lower()
    if code == "multilingual" or code not in LANGUAGE_MAP:
        return None
    return code
