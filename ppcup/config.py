# ppcup/config.py

import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Process-wide settings, read once at startup."""

    # Storage
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ppcup.db")
    REDIS_URL = os.getenv("REDIS_URL", "")

    # osu! API credentials
    OSU_API_URL = os.getenv("OSU_API_URL", "https://osu.ppy.sh")
    OSU_CLIENT_ID = os.getenv("OSU_CLIENT_ID")
    OSU_CLIENT_SECRET = os.getenv("OSU_CLIENT_SECRET")
    REDIRECT_URI = os.getenv("REDIRECT_URI", "")

    DEBUG = os.getenv("DEBUG", "False").lower() == "true"
    ADMIN_NICKNAMES = os.getenv("ADMIN_NICKNAMES", "LLIaBKa")
    # per-logger overrides, e.g. "ppcup.osu_client=DEBUG,ppcup.cache=WARNING"
    LOG_LEVELS = os.getenv("LOG_LEVELS", "")

    # Win eligibility
    ELIGIBILITY_MIN_RATING = float(os.getenv("ELIGIBILITY_MIN_RATING", 4000))
    ELIGIBILITY_MIN_PLAY_COUNT = int(os.getenv("ELIGIBILITY_MIN_PLAY_COUNT", 30000))

    # Elo
    STARTING_ELO = 1000
    ELO_K_FACTOR = 320

    # Timers / external calls
    CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", 60))
    REFRESH_INTERVAL_SECONDS = int(os.getenv("REFRESH_INTERVAL_SECONDS", 600))
    RECONCILE_INTERVAL_SECONDS = int(os.getenv("RECONCILE_INTERVAL_SECONDS", 3600))
    RATE_LIMIT_MAX_RETRIES = int(os.getenv("RATE_LIMIT_MAX_RETRIES", 5))
    RATE_LIMIT_BACKOFF_SECONDS = float(os.getenv("RATE_LIMIT_BACKOFF_SECONDS", 2.0))

    @classmethod
    def get_admin_nicknames(cls):
        """Admin nicknames, compared case-insensitively."""
        return {n.strip().lower() for n in cls.ADMIN_NICKNAMES.split(",") if n.strip()}

    @classmethod
    def get_log_levels(cls):
        """Logger name -> level name from LOG_LEVELS; malformed items are ignored."""
        levels = {}
        for item in cls.LOG_LEVELS.split(","):
            name, sep, level = item.partition("=")
            if sep and name.strip() and level.strip():
                levels[name.strip()] = level.strip().upper()
        return levels

    @classmethod
    def validate(cls):
        """Validate that the osu! credentials are present"""
        if not cls.OSU_CLIENT_ID or not cls.OSU_CLIENT_SECRET:
            raise ValueError("OSU_CLIENT_ID and OSU_CLIENT_SECRET are required")
        return True
