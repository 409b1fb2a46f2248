from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Service ---
    PROJECT_NAME: str = "Food_Order_Core"
    LOG_LEVEL: str = "INFO"

    # --- Storage ---
    DATABASE_URL: str = "sqlite:///./food_order.db"
    DB_CONNECT_RETRIES: int = 10
    DB_CONNECT_WAIT_SECONDS: float = 3.0

    # --- Cache ---
    # Leave REDIS_URL empty to keep the response cache in process memory.
    REDIS_URL: str | None = None
    CACHE_DEFAULT_TTL: int = 300
    CACHE_SWEEP_INTERVAL: float = 60.0

    # --- Order pricing policy ---
    TAX_RATE: float = 0.10
    DELIVERY_BUFFER_MINUTES: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
