"""
Конфигурация бота Duna Casino
Все значения читаются из окружения или .env (pydantic-settings), правила столов собираются в games.rules
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()

_ROOT = Path(__file__).parent.resolve()


class Config(BaseSettings):
    """Настройки Duna Casino"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ---- Telegram ----
    BOT_TOKEN: str = ""  # пустой допустим для тестов, проверяется при запуске
    PARSE_MODE: str = "HTML"
    ENVIRONMENT: str = "prod"  # dev / prod / test
    ADMIN_IDS: str = ""  # через запятую: 123,456

    # ---- Webhook ----
    WEBHOOK_HOST: Optional[str] = None
    WEBHOOK_PATH: str = "/webhook"
    WEBHOOK_URL: Optional[str] = None
    PORT: int = 8000

    # ---- Хранилища ----
    DB_PATH: Path = _ROOT / "duna.db"
    OUTBOX_PATH: Path = _ROOT / "outbox.db"
    DB_TIMEOUT: int = 20  # секунды ожидания блокировки sqlite

    # ---- Логи ----
    LOGS_DIR: Path = _ROOT / "logs"
    LOG_FILE: Path = _ROOT / "logs" / "bot.log"
    LOG_LEVEL: str = "INFO"
    LOG_MAX_SIZE_MB: int = 10
    LOG_BACKUP_COUNT: int = 5

    # ---- Касса ----
    STARTING_BALANCE: int = 50  # приветственный бонус
    MAX_RETRIES: int = 3
    RETRY_DELAY: float = 1.0
    OUTBOX_RETRY_INTERVAL: float = 30.0
    OUTBOX_BATCH_SIZE: int = 50
    MAX_CACHED_USERS: int = 10000  # сколько пользователей держать в памяти (замки, кэш, столы)

    # ---- Столы ----
    MIN_STAKE: int = 1
    MAX_STAKE_MULTIPLIER: int = 100
    BET_AMOUNT_OPTIONS: List[int] = [10, 25, 50, 100]
    BET_COUNT_OPTIONS: List[int] = [1, 2, 5, 10, 100]
    ROULETTE_CHIPS: List[int] = [5, 10, 25, 50, 100]
    HISTORY_LIMIT: int = 20
    BACCARAT_HISTORY_DISPLAY: int = 15
    ROULETTE_NUMBERS_HISTORY: int = 10

    # Паузы показа, на исход не влияют
    DEAL_DELAY: float = 0.8
    SPIN_DELAY: float = 3.0
    DICE_DELAY: float = 1.5
    MESSAGE_DELETE_TIMEOUT: int = 60

    # ---- Лотерея ----
    LOTTERY_EXTRA_TICKET_PRICE: int = 50
    LOTTERY_TICKET_CODE_LENGTH: int = 8

    # ---- Рефералы ----
    REFERRAL_BONUS: int = 50  # получают оба: приглашённый и пригласивший
    REFERRAL_CODE_LENGTH: int = 6

    @field_validator("BOT_TOKEN")
    @classmethod
    def validate_bot_token(cls, v: str) -> str:
        if v and ":" not in v:
            raise ValueError("BOT_TOKEN должен содержать ':' (формат: BOT_ID:TOKEN)")
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ("dev", "prod", "test")
        if v.lower() not in allowed:
            raise ValueError(f"ENVIRONMENT должен быть одним из: {', '.join(allowed)}")
        return v.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL должен быть одним из: {', '.join(allowed)}")
        return v.upper()

    @field_validator("ADMIN_IDS")
    @classmethod
    def validate_admin_ids(cls, v: str) -> str:
        for part in v.split(","):
            if part.strip() and not part.strip().lstrip("-").isdigit():
                raise ValueError(f"ADMIN_IDS: '{part.strip()}' не похоже на Telegram ID")
        return v

    @model_validator(mode="after")
    def resolve_webhook_url(self) -> "Config":
        """WEBHOOK_URL из WEBHOOK_HOST или из домена хостинга (Render, Railway)"""
        if self.WEBHOOK_URL:
            return self
        if self.WEBHOOK_HOST:
            self.WEBHOOK_URL = f"{self.WEBHOOK_HOST}{self.WEBHOOK_PATH}"
        elif self.is_production:
            domain = os.getenv("RENDER_EXTERNAL_URL") or os.getenv("RAILWAY_PUBLIC_DOMAIN")
            if domain:
                self.WEBHOOK_URL = f"https://{domain}{self.WEBHOOK_PATH}"
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def use_webhook(self) -> bool:
        return self.is_production and self.WEBHOOK_URL is not None

    @property
    def admin_ids(self) -> List[int]:
        return [int(part) for part in self.ADMIN_IDS.split(",") if part.strip()]

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids


try:
    config = Config()
except Exception as e:
    raise RuntimeError(
        f"Ошибка загрузки конфигурации: {e}\n"
        f"Проверьте переменные окружения или .env файл"
    ) from e


__all__ = ["config", "Config"]
