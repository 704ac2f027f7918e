# mindjournal/config.py
from __future__ import annotations
import os
import zoneinfo
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    app_env: str = "production"
    database_url: str = "sqlite+aiosqlite:///./journal.db"
    bot_token: str = ""
    bot_username: str = "your_bot"
    mini_app_url: str = "http://localhost:8080"
    webhook_secret: Optional[str] = None
    tz_name: Optional[str] = None
    scheduler_enabled: bool = True
    auto_create_schema: bool = True
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            app_env=os.getenv("APP_ENV", "production").strip().lower(),
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            bot_token=os.getenv("BOT_TOKEN", ""),
            bot_username=os.getenv("BOT_USERNAME", cls.bot_username),
            mini_app_url=os.getenv("MINI_APP_URL", cls.mini_app_url),
            webhook_secret=os.getenv("TELEGRAM_WEBHOOK_SECRET") or None,
            tz_name=os.getenv("TZ_NAME") or None,
            scheduler_enabled=_flag("SCHEDULER_ENABLED", True),
            auto_create_schema=_flag("AUTO_CREATE_SCHEMA", True),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def dev_bypass_enabled(self) -> bool:
        """The X-Dev-User header is honoured in development only."""
        return self.app_env == "development"

    @property
    def tz(self) -> Optional[zoneinfo.ZoneInfo]:
        # None means the server's local time zone
        return zoneinfo.ZoneInfo(self.tz_name) if self.tz_name else None
