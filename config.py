import logging
import os
import sys
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Settings:
    """Runtime configuration read from the environment (and `.env`)."""

    def __init__(self):
        self.environment = os.getenv("ENVIRONMENT", "development").strip().lower()
        self.database_url = os.getenv("DATABASE_URL")
        self.database_name = os.getenv("DATABASE_NAME")

        self.jwt_secret = os.getenv("JWT_SECRET", "devsecret")
        self.jwt_algorithm = "HS256"
        self.jwt_expires_days = _int_env("JWT_EXPIRES_DAYS", 7)
        self.bcrypt_rounds = _int_env("BCRYPT_ROUNDS", 12)

        self.razorpay_key_id = os.getenv("RAZORPAY_KEY_ID", "")
        self.razorpay_key_secret = os.getenv("RAZORPAY_KEY_SECRET", "")
        self.razorpay_api_url = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1").rstrip("/")
        self.gateway_timeout = _float_env("GATEWAY_TIMEOUT", 30.0)

        self.currency = os.getenv("CURRENCY", "INR")
        self.delivery_fee = _float_env("DELIVERY_FEE", 50.0)
        # client and server totals may round differently
        self.amount_tolerance = 1.0

        self.products_cache_ttl = _int_env("PRODUCTS_CACHE_TTL", 600)
        self.categories_cache_ttl = _int_env("CATEGORIES_CACHE_TTL", 900)
        self.cache_max_entries = _int_env("CACHE_MAX_ENTRIES", 1000)

        self.cors_origins: List[str] = [
            o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()
        ]
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.port = _int_env("PORT", 8000)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()


def setup_logging(level: str = None):
    """Configures the root logger once."""
    root = logging.getLogger()
    root.setLevel(level or settings.log_level)
    if any(getattr(h, "_shop_handler", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"))
    handler._shop_handler = True
    root.addHandler(handler)
