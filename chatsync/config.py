"""Chat synchronization configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Chat synchronization settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Chat gateway
    GATEWAY_API_URL: str = "http://localhost:8080"
    GATEWAY_API_TOKEN: str = ""
    REQUEST_TIMEOUT: float = 30.0

    # Operator session, normally provided by the host application
    OPERATOR_USER_ID: str = ""
    OPERATOR_COMPANY_ID: str = ""

    # WebSocket event stream
    WS_PING_INTERVAL: float = 30.0
    WS_PING_TIMEOUT: float = 10.0
    WS_MAX_RECONNECT_DELAY: float = 60.0

    # Synchronization
    PAGE_SIZE: int = 45
    CACHE_WINDOW: int = 45
    CORRESPONDS_MIN_MESSAGES: int = 8
    SKIP_FETCH_WHEN_CORRESPONDS: bool = True

    # Offline cache
    CACHE_BACKEND: str = "sql"  # sql, redis
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_KEY_PREFIX: str = "chatsync:conversation:"
    DATABASE_URL: str = "sqlite+aiosqlite:///./chatsync-cache.db"

    # Telemetry
    OTEL_EXPORTER_OTLP_ENDPOINT: str = ""
    OTEL_SERVICE_NAME: str = "chatsync"

    # Debug mode
    DEBUG: bool = False


settings = Settings()
