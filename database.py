"""
Database helpers

Connection setup for MongoDB plus the small document utilities the store
and the counters share (timestamps, dotted paths, serialization).
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from pymongo import MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Optional[Database]:
    if not settings.database_url or not settings.database_name:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
        return None
    client = MongoClient(
        settings.database_url,
        serverSelectionTimeoutMS=settings.store_timeout_ms,
        socketTimeoutMS=settings.store_timeout_ms,
        tz_aware=True,
    )
    logger.info("Connected to MongoDB database %s", settings.database_name)
    return client[settings.database_name]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # documents read back without tz_aware come out naive, but are UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def get_path(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path. Crossing a list collects the values from every element."""
    value: Any = doc
    for part in path.split("."):
        if isinstance(value, list):
            value = [item.get(part) for item in value if isinstance(item, dict)]
        elif isinstance(value, dict):
            value = value.get(part)
        else:
            return default
        if value is None:
            return default
    return value


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = value


def serialize_doc(doc: Dict[str, Any], hidden: Iterable[str] = ()) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id")) if doc.get("_id") else None
    for field in hidden:
        doc.pop(field, None)
    return doc
