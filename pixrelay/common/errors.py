"""Error taxonomy shared by the provider layer, orchestrator and HTTP surface."""

from typing import Any


class RelayError(Exception):
    """Base class for every error raised by the relay itself."""

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ConfigurationError(RelayError):
    """Required provider settings are missing or unusable."""


class ChargeValidationError(RelayError):
    """Charge request is missing fields or carries an invalid amount."""


class ProviderError(RelayError):
    """Any failure while talking to the Pix provider."""


class AuthError(ProviderError):
    """OAuth client-credentials exchange failed."""


class TransportError(ProviderError):
    """Network failure or timeout on a provider call."""


class ProviderResponseError(TransportError):
    """Provider answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, detail: Any = None) -> None:
        super().__init__(message, detail)
        self.status_code = status_code


class ProviderProtocolError(ProviderError):
    """Provider reached an inconsistent state (e.g. charge without location id)."""


class WebhookFormatError(RelayError):
    """Webhook payload matched neither the challenge nor the notification shape."""
