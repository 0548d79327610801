import os
from functools import lru_cache

from dotenv import load_dotenv, find_dotenv

# Prefer loading environment variables from a .env file next to where the app is started
_env_path = find_dotenv(usecwd=True)
if _env_path:
    load_dotenv(_env_path, override=False)

REQUIRED_SETTINGS = ("DATABASE_URL", "SECRET_KEY")


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL")
    SECRET_KEY: str = os.getenv("SECRET_KEY")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    # Default to 7 days so sessions survive a week
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(7 * 24 * 60)))
    # Comma separated list of allowed origins for the storefront/admin frontends
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    RETURN_WINDOW_DAYS: int = int(os.getenv("RETURN_WINDOW_DAYS", "7"))
    DEFAULT_COUNTRY: str = os.getenv("DEFAULT_COUNTRY", "India")
    # Admin activity feed: how far back synthetic entries reach and how many items are shown
    ACTIVITY_WINDOW_HOURS: int = int(os.getenv("ACTIVITY_WINDOW_HOURS", "24"))
    NOTIFICATION_FEED_LIMIT: int = int(os.getenv("NOTIFICATION_FEED_LIMIT", "25"))

    @property
    def cors_origins(self) -> list:
        return [o.strip() for o in (self.CORS_ORIGINS or "*").split(",") if o.strip()]

    def missing(self) -> list:
        return [name for name in REQUIRED_SETTINGS if not getattr(self, name)]


@lru_cache
def get_settings():
    settings = Settings()
    missing = settings.missing()
    if missing:
        raise RuntimeError(
            f"{', '.join(missing)} not set. Export them or add them to a .env file "
            "(DATABASE_URL as postgres:// or postgresql://)."
        )
    return settings
