"""
Application settings

Values come from the environment (optionally a local .env file) and are read
once at startup. Handlers receive them through the `get_settings` dependency.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    jwt_secret: str = "devsecret"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    environment: str = "development"
    log_level: str = "INFO"
    enforce_status_transitions: bool = False
    admin_name: str = "Admin User"
    admin_email: str = "admin@velora.com"
    admin_password: str = "admin123"
    cors_origins: tuple = ("*",)
    port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        origins: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            jwt_secret=os.getenv("JWT_SECRET", "devsecret"),
            jwt_expires_days=int(os.getenv("JWT_EXPIRES_DAYS", 7)),
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            enforce_status_transitions=_flag("ENFORCE_STATUS_TRANSITIONS"),
            admin_name=os.getenv("ADMIN_NAME", "Admin User"),
            admin_email=os.getenv("ADMIN_EMAIL", "admin@velora.com"),
            admin_password=os.getenv("ADMIN_PASSWORD", "admin123"),
            cors_origins=tuple(origins) or ("*",),
            port=int(os.getenv("PORT", 8000)),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
