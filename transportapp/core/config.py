from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "TransportApp API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str = "dev_secret_change_me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    DATABASE_URL: str = "sqlite:///./transportapp.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    BASE_URL: str = ""  # e.g. https://transportapp.mx - used for public links in notifications
    LOCAL_TZ: str = "America/Monterrey"

    # Hard cap per departure, also clamped by template capacity.
    MAX_CAPACITY: int = 6

    # Fallback pricing when the PRICING setting row is missing
    DEFAULT_PASSENGER_PRICE: str = "120.00"
    DEFAULT_PACKAGE_PRICE: str = "120.00"
    CURRENCY: str = "mxn"

    # Attempts for token / ticket code / sequence generation on unique collisions
    IDENTIFIER_RETRY_LIMIT: int = 5

    # Stripe hosted checkout
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_TIMEOUT_SECONDS: int = 10
    STRIPE_DASHBOARD_URL: str = "https://dashboard.stripe.com"

    # Admin chat notifications (Telegram Bot API)
    TG_BOT_TOKEN: str = ""
    TG_CHAT_ID: str = ""
    NOTIFY_TIMEOUT_SECONDS: int = 7


settings = Settings()
