from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./heartbeats.db"
    SQL_ECHO: bool = False

    # Admin routes answer 503 until this is set
    ADMIN_API_KEY: str = ""

    ACTIVE_WINDOW_SECONDS: int = 300
    HISTORY_DEFAULT_LIMIT: int = 100
    HISTORY_MAX_LIMIT: int = 1000

    # Per-device heartbeat statistics on the monitor endpoint
    HEARTBEAT_STATS_WINDOW_SECONDS: int = 3600
    RECENT_HEARTBEAT_LIMIT: int = 10000

    REQUEST_TIMEOUT_SECONDS: float = 10.0

    TRUST_CLIENT_IP: bool = False
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def cors_origins(self):
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


UNKNOWN = "unknown"
MAX_WINDOW_SECONDS = 365 * 24 * 60 * 60
settings = Settings()
