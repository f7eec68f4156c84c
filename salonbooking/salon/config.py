"""Runtime settings read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_FRONTEND_URL = "http://localhost:5000"
RAZORPAY_API_URL = "https://api.razorpay.com/v1"


@dataclass(frozen=True)
class Settings:
    database_path: str = "salon.db"
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_url: str = RAZORPAY_API_URL
    frontend_url: str = DEFAULT_FRONTEND_URL
    request_timeout: float = 20.0
    secret_key: str = "salon-secret"
    log_level: str = "INFO"

    @property
    def payments_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)


def load_settings(env_file: str | None = None) -> Settings:
    """Build :class:`Settings` from environment variables."""

    load_dotenv(env_file)
    # Browsers send the Origin header without a trailing slash
    frontend_url = os.getenv("FRONTEND_URL", DEFAULT_FRONTEND_URL).rstrip("/")
    return Settings(
        database_path=os.getenv("SALON_DATABASE", "salon.db"),
        razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
        razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
        razorpay_api_url=os.getenv("RAZORPAY_API_URL", RAZORPAY_API_URL).rstrip("/"),
        frontend_url=frontend_url,
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "20")),
        secret_key=os.getenv("SECRET_KEY", "salon-secret"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
