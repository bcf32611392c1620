"""Centralised application settings (dotenv + env overrides)."""
from __future__ import annotations
import os
from pathlib import Path
from dotenv import load_dotenv

ROOT = Path(__file__).parents[1]
load_dotenv(ROOT / ".env", override=False)

class settings:                            # pylint: disable=too-few-public-methods
    LOG_LEVEL           = os.getenv("LOG_LEVEL", "INFO").upper()

    # Edge gateway
    SITE_ID             = os.getenv("SITE_ID", "site-001")
    HUB_URL             = os.getenv("HUB_URL", "ws://localhost:8080")
    DEVICES_FILE        = os.getenv("DEVICES_FILE", str(ROOT / "config" / "devices.json"))
    POLL_INTERVAL       = float(os.getenv("POLL_INTERVAL", 30))
    DEVICE_TIMEOUT      = float(os.getenv("DEVICE_TIMEOUT", 5))
    RECONNECT_DELAY     = float(os.getenv("RECONNECT_DELAY", 5))
    EVENT_QUEUE_SIZE    = int(os.getenv("EVENT_QUEUE_SIZE", 256))

    # Cloud hub
    HUB_HOST            = os.getenv("HUB_HOST", "0.0.0.0")
    HUB_PORT            = int(os.getenv("HUB_PORT", 8080))
    DATABASE_URL        = os.getenv("DATABASE_URL", f"sqlite:///{ROOT / 'minefleet.db'}")
    REDIS_URL           = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    THRESHOLD_CACHE_TTL = int(os.getenv("THRESHOLD_CACHE_TTL", 3600))

    @classmethod
    def site_url(cls) -> str:
        """Hub endpoint for this gateway's site channel."""
        return f"{cls.HUB_URL.rstrip('/')}/sites/{cls.SITE_ID}"
