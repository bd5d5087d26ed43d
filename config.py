"""
Runtime settings

Everything is read from environment variables so the same code runs
locally, in tests and in the container.
"""
import os
from typing import List, Optional

from pydantic import BaseModel, Field


def _flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: Optional[str] = Field(None, description="Database holding the collections")
    store_timeout_ms: int = Field(5000, ge=1, description="Server selection / socket timeout")
    cascade_category_paths: bool = Field(False, description="Rewrite descendant paths after a category move")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000


def load_settings() -> Settings:
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        store_timeout_ms=int(os.getenv("STORE_TIMEOUT_MS", 5000)),
        cascade_category_paths=_flag(os.getenv("CATEGORY_CASCADE_PATHS")),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=int(os.getenv("PORT", 8000)),
    )
