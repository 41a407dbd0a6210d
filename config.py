"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""
import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings

DB_FILE = os.path.join(os.path.dirname(__file__), "rideshare.db")


class Settings(BaseSettings):
    # App
    app_name: str = "rideshare-api"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = f"sqlite:///{DB_FILE}"

    # Chat delivery
    enable_socket: bool = False
    api_base_url: str = "http://localhost:8000"
    poll_interval_s: float = Field(default=5.0, gt=0)
    poll_max_retries: int = Field(default=3, ge=1)
    message_max_length: int = 1000

    # Search
    fallback_limit: int = Field(default=20, ge=1)

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()


def configure_logging(level=None):
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
