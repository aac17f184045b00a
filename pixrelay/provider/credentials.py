"""Client identity for mutual TLS with the provider.

The provider hands out a PKCS#12 bundle; it is shipped to the process as a
base64 environment variable and decoded exactly once at startup.
"""

import base64
import binascii
import ssl
import tempfile
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, pkcs12

from pixrelay.common.config import RelaySettings
from pixrelay.common.errors import ConfigurationError
from pixrelay.common.logging import logger


@dataclass(frozen=True)
class CredentialBundle:
    """Decoded certificate material plus the OAuth client credentials."""

    certificate: bytes
    passphrase: str
    client_id: str
    client_secret: str

    def __repr__(self) -> str:
        return f"CredentialBundle(client_id={self.client_id!r}, certificate=<{len(self.certificate)} bytes>)"


def load_credentials(settings: RelaySettings) -> CredentialBundle:
    """Build the bundle from settings or raise naming every missing variable."""

    missing = settings.missing_provider_settings()
    if missing:
        raise ConfigurationError("missing required settings", detail=missing)
    try:
        certificate = base64.b64decode(settings.pix_cert_base64, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("PIX_CERT_BASE64 is not valid base64", detail=str(exc)) from exc
    if not certificate:
        raise ConfigurationError("PIX_CERT_BASE64 decoded to an empty bundle")
    return CredentialBundle(
        certificate=certificate,
        passphrase=settings.pix_cert_password,
        client_id=settings.pix_client_id,
        client_secret=settings.pix_client_secret,
    )


def build_ssl_context(bundle: CredentialBundle, ca_bundle: str | None = None) -> ssl.SSLContext:
    """Turn the PKCS#12 bundle into a verifying client-side SSL context.

    `ssl` only loads key material from files, so the PEM conversion lives in a
    temporary directory for the duration of `load_cert_chain`.
    """

    password = bundle.passphrase.encode("utf-8") if bundle.passphrase else None
    try:
        key, cert, extra_certs = pkcs12.load_key_and_certificates(bundle.certificate, password)
    except ValueError as exc:
        raise ConfigurationError("could not open certificate bundle (wrong passphrase?)", detail=str(exc)) from exc
    if key is None or cert is None:
        raise ConfigurationError("certificate bundle has no private key or certificate")

    context = ssl.create_default_context(cafile=ca_bundle)
    context.check_hostname = True
    context.verify_mode = ssl.CERT_REQUIRED

    chain = cert.public_bytes(Encoding.PEM) + b"".join(c.public_bytes(Encoding.PEM) for c in extra_certs or [])
    key_pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
    with tempfile.TemporaryDirectory(prefix="pixrelay-") as tmp:
        cert_path = Path(tmp) / "client.crt"
        key_path = Path(tmp) / "client.key"
        cert_path.write_bytes(chain)
        key_path.touch(mode=0o600)
        key_path.write_bytes(key_pem)
        context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))

    logger.info("mTLS identity loaded subject=%s", cert.subject.rfc4514_string())
    return context
