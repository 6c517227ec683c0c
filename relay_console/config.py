"""
Relay Console Configuration
===========================

PURPOSE:
    Pydantic-Settings based configuration for the relay console.
    All settings can be overridden via environment variables (RELAY_CONSOLE_ prefix).
"""

import logging
import os
from typing import Literal

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_DEFAULT_RELAY_URL = "http://localhost:3000"


class Settings(BaseSettings):
    app_name: str = "relay-console"

    # Local HTTP API
    host: str = "127.0.0.1"
    port: int = 8765

    # Relay service the stats are read from
    relay_base_url: str = _DEFAULT_RELAY_URL
    request_timeout: float = 10.0
    request_retries: int = 2  # Extra attempts after the first on transport failure

    # Local credential storage
    data_dir: str = os.path.join(os.path.expanduser("~"), ".relay-console")
    store_filename: str = "console.json"

    # Stats view
    default_period: Literal["daily", "monthly"] = "daily"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = False

    class Config:
        env_file = ".env"
        env_prefix = "RELAY_CONSOLE_"

    @property
    def store_path(self) -> str:
        return os.path.join(self.data_dir, self.store_filename)


settings = Settings()
