"""Startup-time helpers for safe config logging."""

from pydantic_settings import BaseSettings

from pixrelay.common.logging import logger


SECRET_MARKERS = ("key", "secret", "password", "token", "cert", "client_id")


def _safe_value(settings: BaseSettings, name: str) -> str:
    """Return the effective setting with simple redaction for secret-like field names."""

    value = getattr(settings, name, None)
    if value is None or value == "":
        return "<unset>"
    if any(marker in name.lower() for marker in SECRET_MARKERS):
        return "<redacted>"
    return str(value)


def startup_config(settings: BaseSettings, keys: list[str]) -> dict[str, str]:
    return {key: _safe_value(settings, key) for key in keys}


def log_startup_config(settings: BaseSettings, keys: list[str]) -> None:
    """Log selected settings as loaded (env and `.env`) for quick troubleshooting."""

    logger.info("startup_config=%s", startup_config(settings, keys))


def log_missing_settings(missing: list[str]) -> None:
    """Report required settings that are absent; the process keeps running degraded."""

    if missing:
        logger.error("missing required settings, charge creation disabled: %s", ", ".join(missing))
