from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    REDIS_URL: str = "redis://localhost:6379"

    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    ENVIRONMENT: str = "development"
    TIMEZONE: str = "Asia/Kolkata"
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173"]

    # Orders
    ORDER_ID_PREFIX: str = "SW"
    ORDER_ID_MAX_ATTEMPTS: int = 5
    ORDER_EXPIRY_MINUTES: int = 10
    EXPIRY_SWEEP_SECONDS: int = 30
    PREP_TIME_OPTIONS: List[int] = [5, 10, 15, 20, 25, 30, 45, 60]

    # Store access
    STORE_READ_RETRIES: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.2

    # Realtime
    FEED_CHANNEL: str = "orders:changes"
    FEED_RECONNECT_ATTEMPTS: int = 5

    # Turn off in tests and one-off scripts
    BACKGROUND_JOBS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"

settings = Settings()
