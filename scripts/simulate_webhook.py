"""Test utility to simulate platform webhook calls.

Sends realistic payloads to a locally running API so the ingestion path can
be exercised without platform credentials or a public tunnel.

Usage:
    # Subscription handshake (Facebook / Instagram)
    python scripts/simulate_webhook.py --verify facebook

    # Inbound messages
    python scripts/simulate_webhook.py whatsapp "Hi, is this still available?"
    python scripts/simulate_webhook.py telegram "Hello" --sender 424242 --name "Ana Lopez"
    python scripts/simulate_webhook.py email "Can you send me a quote?" --sender ana@example.com
"""

import argparse
import asyncio
import sys
import time
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from app.config import get_settings

settings = get_settings()

DEFAULT_SENDERS = {
    "whatsapp": "5215512345678",
    "telegram": "424242",
    "facebook": "PSID_1234567890",
    "instagram": "IGSID_1234567890",
    "email": "customer@example.com",
}


def build_payload(platform: str, text: str, sender: str, name: str) -> dict:
    """Build a webhook body in the platform's own format."""
    now = int(time.time())
    first_name, _, last_name = name.partition(" ")

    if platform == "whatsapp":
        return {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": "WABA_ID_123",
                    "changes": [
                        {
                            "field": "messages",
                            "value": {
                                "messaging_product": "whatsapp",
                                "contacts": [{"wa_id": sender, "profile": {"name": name}}],
                                "messages": [
                                    {
                                        "from": sender,
                                        "id": f"wamid.test_{now}",
                                        "timestamp": str(now),
                                        "type": "text",
                                        "text": {"body": text},
                                    }
                                ],
                            },
                        }
                    ],
                }
            ],
        }

    if platform == "telegram":
        return {
            "update_id": now,
            "message": {
                "message_id": now % 100000,
                "date": now,
                "chat": {"id": int(sender), "type": "private"},
                "from": {"id": int(sender), "first_name": first_name, "last_name": last_name},
                "text": text,
            },
        }

    if platform in ("facebook", "instagram"):
        return {
            "object": "page" if platform == "facebook" else "instagram",
            "entry": [
                {
                    "id": "PAGE_ID_123",
                    "time": now * 1000,
                    "messaging": [
                        {
                            "sender": {"id": sender},
                            "recipient": {"id": "PAGE_ID_123"},
                            "timestamp": now * 1000,
                            "message": {"mid": f"m_test_{now}", "text": text},
                        }
                    ],
                }
            ],
        }

    return {
        "from": f"{name} <{sender}>",
        "to": settings.from_email or "support@example.com",
        "subject": "Question",
        "text": text,
        "messageId": f"<test.{now}@example.com>",
    }


async def send_webhook(base_url: str, platform: str, text: str, sender: str, name: str) -> None:
    payload = build_payload(platform, text, sender, name)
    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            response = await client.post(f"{base_url}/webhooks/{platform}", json=payload)
            response.raise_for_status()
            print(f"Webhook accepted: {response.json()}")
        except httpx.HTTPStatusError as e:
            print(f"Error: {e}")
            print(f"Response: {e.response.text}")
        except httpx.HTTPError as e:
            print(f"Error: {e}")


async def check_verification(base_url: str, platform: str) -> None:
    """Simulate Meta registering the webhook URL."""
    challenge = "test_challenge_response_123"
    params = {
        "hub.mode": "subscribe",
        "hub.verify_token": settings.meta_webhook_verify_token,
        "hub.challenge": challenge,
    }
    async with httpx.AsyncClient(timeout=10.0) as client:
        response = await client.get(f"{base_url}/webhooks/{platform}", params=params)

    if response.status_code == 200 and response.text == challenge:
        print(f"Webhook verification PASSED for {platform}")
    else:
        print(f"Webhook verification FAILED for {platform}")
        print(f"   Status: {response.status_code}")
        print(f"   Body: {response.text}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Send test webhooks to a local Omnidesk API")
    parser.add_argument("platform", choices=sorted(DEFAULT_SENDERS))
    parser.add_argument("text", nargs="?", default="Hello from the webhook simulator")
    parser.add_argument("--verify", action="store_true", help="Run the hub.* handshake instead")
    parser.add_argument("--sender", help="Platform sender id (phone, chat id, PSID or address)")
    parser.add_argument("--name", default="Test User", help="Sender display name")
    parser.add_argument("--base-url", default="http://localhost:8000")
    args = parser.parse_args()

    if args.verify:
        await check_verification(args.base_url, args.platform)
        return

    sender = args.sender or DEFAULT_SENDERS[args.platform]
    await send_webhook(args.base_url, args.platform, args.text, sender, args.name)


if __name__ == "__main__":
    asyncio.run(main())
