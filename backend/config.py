"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'monitor.db'}"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "monitor"  # Namespace for every key-value store key
    encryption_key: str = ""  # Fernet key; generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite dev server

    # Dashboard auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # Read API / cron auth
    api_keys: list[str] = []
    cron_secret: str = ""

    # Collection
    collection_interval_minutes: int = 5  # 0 disables the in-process scheduler
    exchange_timeout_seconds: float = 15.0

    # Exchanges
    okx_base_url: str = "https://www.okx.com"
    aster_base_url: str = "https://fapi.asterdex.com"

    model_config = {"env_prefix": "MON_", "env_file": ".env"}


settings = Settings()
