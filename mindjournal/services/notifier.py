from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx
from httpx import Timeout

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_TIMEOUT = Timeout(10.0)


class DeliveryError(RuntimeError):
    pass


@dataclass(frozen=True)
class Delivery:
    """Outcome of a single send. Never raised, always returned."""
    error: Optional[DeliveryError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Notifier(Protocol):
    async def send(
        self, recipient: str, text: str, action_link: Optional[str] = None
    ) -> Delivery:
        ...


class NullNotifier:
    """Used when no bot token is configured."""

    async def send(self, recipient: str, text: str, action_link: Optional[str] = None) -> Delivery:
        return Delivery(DeliveryError("notifier is not configured"))


class TelegramNotifier:
    def __init__(
        self,
        bot_token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = TELEGRAM_API_BASE,
    ):
        self._url = f"{base_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, recipient: str, text: str, action_link: Optional[str] = None) -> Delivery:
        payload: dict = {"chat_id": recipient, "text": text, "parse_mode": "Markdown"}
        if action_link:
            payload["reply_markup"] = {
                "inline_keyboard": [[{"text": "📖 Open Journal", "web_app": {"url": action_link}}]]
            }
        try:
            r = await self._client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            return Delivery(DeliveryError(f"transport error: {e}"))

        if r.status_code != 200:
            # e.g. 403 when the user never started the bot
            return Delivery(DeliveryError(f"telegram {r.status_code}: {r.text[:200]}"))
        return Delivery()


async def notify_quietly(
    notifier: Notifier, recipient: str, text: str, action_link: Optional[str] = None
) -> bool:
    """Send and discard any delivery failure.

    Notifications are best effort: a recipient who never started a chat with
    the bot must not break the caller. This is the only place a failed
    ``Delivery`` is dropped.
    """
    try:
        delivery = await notifier.send(recipient, text, action_link)
    except Exception as e:
        logger.warning("notifier raised instead of returning a Delivery: %r", e)
        return False
    if not delivery.ok:
        logger.debug("notification to %s dropped: %s", recipient, delivery.error)
    return delivery.ok
