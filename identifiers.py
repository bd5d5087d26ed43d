"""
Slugs and generated identifiers
"""
import re
import secrets
import string
import time
from typing import Callable, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_BASE36 = string.digits + string.ascii_uppercase


def slugify(text: str) -> str:
    """Lowercase, collapse every run of non-alphanumerics to one hyphen, trim hyphens."""
    return _NON_ALNUM.sub("-", (text or "").lower()).strip("-")


def unique_slug(text: str, disambiguator, taken: Callable[[str], bool]) -> str:
    """Bare slug unless ``taken`` says it collides, then ``<slug>-<disambiguator>``."""
    base = slugify(text)
    if not taken(base):
        return base
    return f"{base}-{disambiguator}"


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def order_number(now_ms: Optional[int] = None) -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"ORD-{now_ms if now_ms is not None else timestamp_ms()}-{suffix}"


def referral_code(object_id) -> str:
    return f"REF{str(object_id)[-8:].upper()}"
