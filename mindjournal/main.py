# mindjournal/main.py

from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mindjournal.api.routers import entries, notifications, ratings, relationships, telegram
from mindjournal.config import Settings
from mindjournal.db import build_engine, build_sessionmaker, create_schema
from mindjournal.errors import JournalError, journal_error_handler
from mindjournal.services.notifier import Notifier, NullNotifier, TelegramNotifier
from mindjournal.services.scheduler import NotificationScheduler

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, *, notifier: Optional[Notifier] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings.database_url)
        if settings.auto_create_schema:
            await create_schema(engine)

        own_notifier = None
        if notifier is not None:
            active = notifier
        elif settings.bot_token:
            active = own_notifier = TelegramNotifier(settings.bot_token)
        else:
            logger.warning("BOT_TOKEN not set, notifications are disabled")
            active = NullNotifier()

        app.state.settings = settings
        app.state.sessionmaker = build_sessionmaker(engine)
        app.state.notifier = active

        scheduler = None
        if settings.scheduler_enabled:
            scheduler = NotificationScheduler(
                app.state.sessionmaker, active, tz=settings.tz, mini_app_url=settings.mini_app_url
            )
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()
            if own_notifier is not None:
                await own_notifier.aclose()
            await engine.dispose()

    app = FastAPI(title="Emotional Journal API", lifespan=lifespan)
    # handlers may read settings before the lifespan has run (e.g. in tests)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "x-telegram-init-data", "x-dev-user"],
    )
    app.add_exception_handler(JournalError, journal_error_handler)

    app.include_router(entries.router)
    app.include_router(ratings.router)
    app.include_router(relationships.router)
    app.include_router(notifications.router)
    app.include_router(telegram.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    if settings.dev_bypass_enabled:
        logger.warning("APP_ENV=development: x-dev-user header bypasses initData verification")
    return app
