"""Post a fake provider notification (or challenge) to a running relay.

Useful for walking a charge from PENDING to PAID without the provider.
"""

import argparse
import asyncio
import json
from datetime import datetime, timezone
from uuid import uuid4

import httpx


async def deliver(base_url: str, payload: dict | None, challenge: str | None) -> httpx.Response:
    """Send one webhook delivery and return the relay's response."""

    async with httpx.AsyncClient(timeout=10.0) as client:
        if challenge:
            return await client.post(
                f"{base_url}/pix/webhook",
                headers={"x-webhook-validation": challenge},
            )
        return await client.post(f"{base_url}/pix/webhook", json=payload)


def main() -> None:
    """Parse CLI args and deliver one notification."""

    parser = argparse.ArgumentParser(description="Simulate a Pix webhook delivery.")
    parser.add_argument("--base-url", default="http://localhost:8080")
    parser.add_argument("--txid", default=None)
    parser.add_argument("--amount", default="10.00")
    parser.add_argument("--end-to-end-id", default=None)
    parser.add_argument("--challenge", default=None, help="Send a validation challenge instead")
    args = parser.parse_args()

    if bool(args.txid) == bool(args.challenge):
        raise SystemExit("Provide exactly one of --txid or --challenge")

    payload = None
    if args.txid:
        payload = {
            "pix": [
                {
                    "txid": args.txid,
                    "endToEndId": args.end_to_end_id or f"E{uuid4().hex[:31]}",
                    "valor": args.amount,
                    "horario": datetime.now(timezone.utc).isoformat(),
                }
            ]
        }
        print(f"payload={json.dumps(payload)}")

    resp = asyncio.run(deliver(args.base_url, payload, args.challenge))
    print(f"status={resp.status_code} body={resp.text}")


if __name__ == "__main__":
    main()
