from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    app_env: str = os.getenv("APP_ENV", "production")
    tz: str = os.getenv("TZ", "UTC")

    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

    db_url: str = os.getenv("DB_URL", "")

    log_chat_id: str = os.getenv("LOG_CHAT_ID", "")

    # Rejections must carry an admin note when enabled
    reject_notes_required: bool = _env_bool("REJECT_NOTES_REQUIRED", False)
    rate_limit_user_msg_per_min: int = int(os.getenv("RATE_LIMIT_USER_MSG_PER_MIN", "20"))


settings = Settings()
