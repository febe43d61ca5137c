"""Helper utilities for AI disambiguation feature flags."""

from drawdesk.config import get_settings


def _current_settings():
    return get_settings()


def ai_enabled() -> bool:
    """Return True if AI disambiguation of close candidates is enabled."""

    return bool(_current_settings().AI_DISAMBIGUATION_ENABLED)


def ai_model() -> str:
    """Return the chat model used to pick between candidates."""

    return _current_settings().AI_DISAMBIGUATION_MODEL


def ai_timeout_seconds() -> int:
    return int(_current_settings().AI_DISAMBIGUATION_TIMEOUT_SECONDS)
