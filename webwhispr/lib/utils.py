"""Utility functions for the WebWhispr dictation service."""

import logging
import os

from .constants import ENGINE_PROVIDER

logger = logging.getLogger(__name__)

MODAL_ENV_VARS = ("MODAL_WORKSPACE", "MODAL_KEY", "MODAL_SECRET")


def check_modal_env_vars() -> None:
    """Check that the Modal credentials are present.

    Raises:
        ValueError: If any of them is missing
    """
    missing = [var for var in MODAL_ENV_VARS if not os.getenv(var)]
    if missing:
        raise ValueError(f"Missing required environment variables: {', '.join(missing)}")


def is_modal_configured() -> bool:
    """Check if Modal is configured.

    Returns:
        True if all Modal credentials are set
    """
    return all(os.getenv(var) for var in MODAL_ENV_VARS)


def is_faster_whisper_installed() -> bool:
    try:
        import faster_whisper  # noqa: F401
    except ImportError:
        return False
    return True


def check_engine_available(provider: str = ENGINE_PROVIDER) -> bool:
    """Log a warning if the configured engine cannot be used.

    Returns:
        True if the engine looks usable
    """
    if provider == "modal":
        try:
            check_modal_env_vars()
        except ValueError as e:
            logger.warning("Modal engine selected but not configured: %s", e)
            return False
        return True

    if provider == "whisper":
        if not is_faster_whisper_installed():
            logger.warning(
                "Whisper engine selected but faster-whisper is not installed. "
                "Install with: pip install 'webwhispr[whisper]'"
            )
            return False
        return True

    logger.warning("Unknown engine provider", extra={"provider": provider})
    return False
