"""Register the relay's webhook URL for the configured Pix key.

Reads the same PIX_* environment as the relay and calls
`PUT /webhook/{chave}` on the provider over mTLS.
"""

import argparse
import asyncio

from pixrelay.common.config import get_settings
from pixrelay.common.logging import configure_logging
from pixrelay.provider.client import build_client_factory


async def register(webhook_url: str, pix_key: str | None) -> str:
    """Open one provider client, register the URL, close the client."""

    settings = get_settings()
    key = pix_key or settings.pix_key
    if not key:
        raise SystemExit("Provide --pix-key or set PIX_KEY")

    factory = build_client_factory(settings)
    async with await factory.build_client() as client:
        await client.put_webhook(key, webhook_url)
    return key


def main() -> None:
    """Parse CLI args and register one webhook URL."""

    parser = argparse.ArgumentParser(description="Register the webhook URL for a Pix key.")
    parser.add_argument("--url", required=True, help="Public URL of /pix/webhook")
    parser.add_argument("--pix-key", default=None, help="Defaults to PIX_KEY")
    args = parser.parse_args()

    configure_logging("register-webhook")
    key = asyncio.run(register(args.url, args.pix_key))
    print(f"Webhook registered for key={key} url={args.url}")


if __name__ == "__main__":
    main()
