"""Configuration management for the tunegen service."""

import os
from dataclasses import dataclass
from typing import List
from dotenv import load_dotenv


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    api_keys: List[str]
    port: int = 8000
    host: str = "0.0.0.0"
    kie_base_url: str = "https://api.kie.ai/api/v1"
    max_requests_per_window: int = 20
    reset_window_seconds: int = 3600
    poll_grace_seconds: float = 5
    poll_interval_seconds: float = 10
    poll_timeout_seconds: float = 600
    request_timeout_seconds: float = 30
    default_model: str = "V3_5"
    callback_url: str = "https://your-app.com/callback"
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.api_keys:
            raise ValueError(
                "KIE_API_KEYS environment variable must be set and non-empty"
            )
        if self.max_requests_per_window <= 0:
            raise ValueError("MAX_REQUESTS_PER_WINDOW must be positive")
        if self.reset_window_seconds <= 0:
            raise ValueError("RESET_WINDOW_SECONDS must be positive")
        if self.poll_interval_seconds <= 0 or self.poll_timeout_seconds <= 0:
            raise ValueError("Polling interval and timeout must be positive")
        if self.poll_grace_seconds < 0:
            raise ValueError("POLL_GRACE_SECONDS must not be negative")


def load_config(use_dotenv: bool = True) -> Config:
    """Load configuration from environment variables.

    Args:
        use_dotenv: Read a local ``.env`` file before looking at the environment.

    Returns:
        Config: Configured application settings

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    if use_dotenv:
        load_dotenv()

    api_keys_raw = os.getenv("KIE_API_KEYS", "")
    api_keys = [key.strip() for key in api_keys_raw.split(",") if key.strip()]

    return Config(
        api_keys=api_keys,
        port=int(os.getenv("PORT", "8000")),
        host=os.getenv("HOST", "0.0.0.0"),
        kie_base_url=os.getenv("KIE_BASE_URL", "https://api.kie.ai/api/v1"),
        max_requests_per_window=int(os.getenv("MAX_REQUESTS_PER_WINDOW", "20")),
        reset_window_seconds=int(os.getenv("RESET_WINDOW_SECONDS", "3600")),
        poll_grace_seconds=float(os.getenv("POLL_GRACE_SECONDS", "5")),
        poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "10")),
        poll_timeout_seconds=float(os.getenv("POLL_TIMEOUT_SECONDS", "600")),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")),
        default_model=os.getenv("DEFAULT_MODEL", "V3_5"),
        callback_url=os.getenv("CALLBACK_URL", "https://your-app.com/callback"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
