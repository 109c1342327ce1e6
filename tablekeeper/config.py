from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Telegram (customer notifications)
    TG_TOKEN: str = ""
    NOTIFY_CUSTOMERS: bool = True

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_TTL: int = 300
    COMMIT_LOCK_TIMEOUT: int = 10

    # Google Sheets
    GOOGLE_SHEETS_ID: str = ""
    GOOGLE_CREDENTIALS_JSON: str = "credentials.json"

    # Booking rules
    TURNOVER_BUFFER_MINUTES: int = 60
    DEFAULT_DURATION_MINUTES: int = 120

    # App
    DEBUG: bool = False
    TIMEZONE: str = "Europe/Moscow"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
