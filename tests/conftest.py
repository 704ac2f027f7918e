import json
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from mindjournal.config import Settings
from mindjournal.db import build_engine, build_sessionmaker, create_schema
from mindjournal.main import create_app
from mindjournal.models import User
from mindjournal.services.notifier import Delivery, DeliveryError

BOT_TOKEN = "123456:TEST-TOKEN"


class RecordingNotifier:
    def __init__(self, failing: tuple = ()):
        self.sent: list[tuple[str, str, Optional[str]]] = []
        self.failing = set(failing)

    async def send(self, recipient, text, action_link=None):
        if recipient in self.failing:
            return Delivery(DeliveryError("bot was blocked by the user"))
        self.sent.append((recipient, text, action_link))
        return Delivery()

    def texts_for(self, recipient):
        return [t for r, t, _ in self.sent if r == recipient]


async def memory_db():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    return engine, build_sessionmaker(engine)


async def add_user(db, telegram_id: str, name: str, role: str = "client") -> User:
    user = User(telegram_id=telegram_id, name=name, role=role)
    db.add(user)
    await db.commit()
    return user


def dev_headers(telegram_id, first_name, last_name=None):
    user = {"id": telegram_id, "first_name": first_name}
    if last_name:
        user["last_name"] = last_name
    return {"x-dev-user": json.dumps(user)}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        app_env="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'journal.db'}",
        bot_token=BOT_TOKEN,
        bot_username="journal_test_bot",
        mini_app_url="https://app.example",
        scheduler_enabled=False,
    )


@pytest.fixture
def client(settings, notifier):
    app = create_app(settings, notifier=notifier)
    with TestClient(app) as c:
        yield c
