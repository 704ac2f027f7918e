"""
Telegram Mini App initData verification.

The mini app forwards the raw ``initData`` query string in a request header.
It is signed by Telegram with a key derived from the bot token:

    secret = HMAC_SHA256(key="WebAppData", msg=bot_token)
    hash   = hex(HMAC_SHA256(key=secret, msg=data_check_string))

where ``data_check_string`` is every field except ``hash``, sorted by key and
joined as ``key=value`` lines.
"""
from __future__ import annotations
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import parse_qsl

from mindjournal.errors import (
    Expired, MalformedPayload, MissingCredential, MissingSignature, SignatureMismatch,
)

MAX_AGE = timedelta(hours=24)
WEBAPP_KEY = b"WebAppData"


@dataclass(frozen=True)
class TelegramIdentity:
    id: str
    first_name: str = ""
    last_name: str = ""
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @classmethod
    def from_dict(cls, data: dict) -> "TelegramIdentity":
        if not isinstance(data, dict) or data.get("id") in (None, ""):
            raise MalformedPayload("No user in initData")
        return cls(
            id=str(data["id"]),
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
            username=data.get("username"),
        )


def data_check_string(fields: dict[str, str]) -> str:
    return "\n".join(f"{k}={fields[k]}" for k in sorted(fields))


def sign(fields: dict[str, str], bot_token: str) -> str:
    secret = hmac.new(WEBAPP_KEY, bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(secret, data_check_string(fields).encode(), hashlib.sha256).hexdigest()


def verify_init_data(
    raw: Optional[str],
    bot_token: str,
    *,
    now: Optional[float] = None,
    max_age: timedelta = MAX_AGE,
) -> TelegramIdentity:
    """Validate a raw initData string and return the embedded user.

    ``now`` is a unix timestamp (defaults to the current time). Raises one of
    the ``AuthenticationDenied`` subclasses on any failure.
    """
    if not raw:
        raise MissingCredential()

    fields = dict(parse_qsl(raw, keep_blank_values=True))
    received = fields.pop("hash", None)
    if not received:
        raise MissingSignature()

    try:
        auth_date = int(fields["auth_date"])
    except (KeyError, ValueError):
        raise MalformedPayload("initData has no valid auth_date")

    current = time.time() if now is None else now
    if current - auth_date > max_age.total_seconds():
        raise Expired()

    expected = sign(fields, bot_token)
    if not hmac.compare_digest(expected.encode(), received.encode()):
        raise SignatureMismatch()

    user_raw = fields.get("user")
    if not user_raw:
        raise MalformedPayload("No user in initData")
    try:
        user = json.loads(user_raw)
    except ValueError:
        raise MalformedPayload("initData user is not valid JSON")
    return TelegramIdentity.from_dict(user)
