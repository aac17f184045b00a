"""Central environment-driven settings for the relay process.

Loaded once at startup. Provider credentials are optional at the type level so
that a misconfigured process still boots and reports itself as degraded.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Field name -> environment variable that must be set to talk to the provider.
REQUIRED_PROVIDER_SETTINGS: dict[str, str] = {
    "pix_client_id": "PIX_CLIENT_ID",
    "pix_client_secret": "PIX_CLIENT_SECRET",
    "pix_cert_base64": "PIX_CERT_BASE64",
    "pix_cert_password": "PIX_CERT_PASSWORD",
    "pix_api_base": "PIX_API_BASE",
    "pix_oauth_url": "PIX_OAUTH_URL",
}


class RelaySettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "pix-relay"
    log_level: str = "INFO"
    port: int = 8080

    pix_client_id: str | None = None
    pix_client_secret: str | None = None
    pix_cert_base64: str | None = None
    pix_cert_password: str | None = None
    pix_api_base: str | None = None
    pix_oauth_url: str | None = None
    pix_oauth_scope: str | None = None
    pix_key: str | None = None
    pix_ca_bundle: str | None = None

    pix_api_path: str = "/pix/v2"
    pix_qr_fallback_path: str = "/v2"
    provider_timeout_seconds: float = 15.0
    charge_expiration_seconds: int = 300

    pix_status_store: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    database_url: str = "sqlite:///./data/pixrelay.db"

    otel_exporter_otlp_endpoint: str | None = None
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("pix_api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.rstrip("/")

    @field_validator("pix_status_store")
    @classmethod
    def _normalize_store(cls, value: str) -> str:
        return value.strip().lower()

    def missing_provider_settings(self) -> list[str]:
        """Return env var names of required provider settings that are unset."""

        return [env for field, env in REQUIRED_PROVIDER_SETTINGS.items() if not getattr(self, field)]


def get_settings() -> RelaySettings:
    return RelaySettings()
