"""
Table Service — Configuration
"""
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "table-service"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8006
    LOG_LEVEL: str = "INFO"

    # ── Document store ────────────────────────────────────────
    STORE_BACKEND: str = "sql"  # "sql" | "memory"
    SUBSCRIPTION_MAX_PENDING: int = 1000  # changefeed events held per subscriber

    # ── PostgreSQL ────────────────────────────────────────────
    POSTGRES_HOST: str = "table-db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "table_db"
    POSTGRES_USER: str = "table_user"
    POSTGRES_PASSWORD: str = "table_pass"
    DATABASE_URL: str = ""  # overrides the POSTGRES_* parts when set

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ── Redis / Celery Broker ──────────────────────────────────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def celery_broker_url(self) -> str:
        return self.redis_url

    @property
    def celery_result_backend(self) -> str:
        return self.redis_url

    # ── Billing defaults (per-tenant settings override these) ──
    DEFAULT_TAX_RATE: Decimal = Decimal("0.15")
    DEFAULT_TIMEZONE: str = "UTC"
    DEFAULT_TABLE_COUNT: int = 50

    # ── Telegram ──────────────────────────────────────────────
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    TELEGRAM_WEBHOOK_SECRET: str = ""
    DEFAULT_ADMIN_CHAT_ID: str = ""
    DEFAULT_CASHIER_CHAT_ID: str = ""
    HTTP_TIMEOUT_SECONDS: float = 5.0

    # ── Webhook update de-duplication ─────────────────────────
    WEBHOOK_UPDATE_TTL_SECONDS: int = 86400

    # ── Optimistic Locking Retry ──────────────────────────────
    OPT_LOCK_MAX_RETRIES: int = 5
    OPT_LOCK_BASE_DELAY_MS: int = 50      # base exponential backoff delay in ms
    OPT_LOCK_MAX_DELAY_MS: int = 1000     # max backoff cap in ms
    OPT_LOCK_JITTER_MS: int = 50          # random jitter range in ms

    # ── Scheduled notifications ───────────────────────────────
    NOTIFICATION_POLL_INTERVAL_SECONDS: int = 60
    NOTIFICATION_GUARD_TTL_SECONDS: int = 55
    NOTIFICATION_GUARD_KEY: str = "inflight:scheduled-notifications"

    # ── Observability ─────────────────────────────────────────
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
