"""
Collection definitions

Wires each schema to its collection together with the rules the store
enforces for it: unique fields, immutable and append-only fields, the
reference resolver and the counter recomputation.
"""
import logging
from typing import Any, Dict, Optional

from passlib.context import CryptContext
from pymongo.database import Database

import associations
import counters
import hierarchy
import schemas
from database import now_utc
from errors import INVALID_VALUE, REQUIRED_FIELD, ValidationError
from identifiers import order_number, referral_code, slugify, timestamp_ms, unique_slug
from order_status import MACHINES, check_transition, lifecycle_date, timeline_event
from store import EntityDefinition, EntityStore

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

EXCERPT_LENGTH = 300


def get_password_hash(password):
    return pwd_context.hash(password)


def _slug_from(doc: Dict[str, Any], source: str) -> None:
    if not doc.get("slug"):
        doc["slug"] = slugify(doc[source])
    if not doc["slug"]:
        raise ValidationError(INVALID_VALUE, "slug", f"Cannot derive a slug from {source} {doc[source]!r}")


# ---------------------------------
# Resolvers: (store, doc, previous) -> None, mutate doc in place
# ---------------------------------

def resolve_user(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    password = doc.pop("password", None)
    stored_hash = previous.get("password_hash") if previous else None
    if doc.get("password_hash") and doc["password_hash"] != stored_hash:
        raise ValidationError(INVALID_VALUE, "password_hash", "Set password instead of password_hash")
    if password:
        doc["password_hash"] = get_password_hash(password)
    if not doc.get("password_hash"):
        raise ValidationError(REQUIRED_FIELD, "password", "Password is required")
    if previous is None:
        doc["referral_code"] = referral_code(doc["_id"])


def resolve_category(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    _slug_from(doc, "name")
    hierarchy.resolve(store, doc, previous)


def resolve_tag(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    _slug_from(doc, "name")


def resolve_product(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    _slug_from(doc, "name")


def resolve_post(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    if not doc.get("slug"):
        doc["slug"] = unique_slug(
            doc["title"], timestamp_ms(),
            lambda slug: store.find_one("post", {"slug": slug, "_id": {"$ne": doc["_id"]}}) is not None,
        )
    if not doc["slug"]:
        raise ValidationError(INVALID_VALUE, "slug", f"Cannot derive a slug from title {doc['title']!r}")
    content_changed = previous is None or previous.get("content") != doc["content"]
    if content_changed and not doc.get("excerpt"):
        doc["excerpt"] = doc["content"][:EXCERPT_LENGTH] + "..."


def _round(value: float) -> float:
    return round(value, 2)


def fill_order_totals(doc: Dict[str, Any]) -> None:
    """Fill in item and order totals the caller left out."""
    for item in doc["items"]:
        if item.get("subtotal") is None:
            item["subtotal"] = _round(item["unit_price"] * item["quantity"])
        if item.get("total") is None:
            item["total"] = _round(item["subtotal"] + (item.get("tax") or 0))
    pricing = doc["pricing"]
    if pricing.get("subtotal") is None:
        pricing["subtotal"] = _round(sum(item["subtotal"] for item in doc["items"]))
    if pricing.get("total") is None:
        discounts = pricing["item_discount"] + pricing["order_discount"] + pricing["coupon_discount"]
        pricing["total"] = _round(max(
            0, pricing["subtotal"] - discounts + pricing["shipping"] - pricing["shipping_discount"] + pricing["tax"]
        ))


def _timeline(event: str, description: Optional[str] = None, when=None) -> Dict[str, Any]:
    return schemas.TimelineEntry(event=event, description=description, timestamp=when or now_utc()).model_dump()


def resolve_order(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    now = now_utc()
    if previous is None:
        doc["order_number"] = order_number()
        fill_order_totals(doc)
        doc["timeline"].append(_timeline("created", "Order placed", now))
        return

    for machine in MACHINES:
        before, after = previous.get(machine), doc.get(machine)
        if before == after:
            continue
        check_transition(machine, before, after)
        date_field = lifecycle_date(machine, after)
        if date_field and not doc.get(date_field):
            doc[date_field] = now
        doc["timeline"].append(_timeline(timeline_event(machine, after), f"{machine} changed from {before} to {after}", now))
        logger.info("Order %s %s: %s -> %s", doc.get("order_number"), machine, before, after)


# ---------------------------------
# Registry
# ---------------------------------

def _unique(field: str, **options) -> tuple:
    return [(field, 1)], {"unique": True, "name": field, **options}


def _present(field: str) -> dict:
    return {"partialFilterExpression": {field: {"$exists": True, "$type": "string"}}}


ENTITIES: Dict[str, EntityDefinition] = {
    "user": EntityDefinition(
        "user", schemas.User,
        unique=("email", "username", "referral_code"),
        immutable=("referral_code",),
        append_only=("activity_log",),
        hidden=("password", "password_hash"),
        resolve=resolve_user,
        indexes=[
            _unique("email"),
            _unique("username"),
            _unique("referral_code", **_present("referral_code")),
            ([("role", 1), ("status", 1)], {}),
            ([("created_at", -1)], {}),
            ([("stats.reputation", -1)], {}),
        ],
    ),
    "category": EntityDefinition(
        "category", schemas.Category,
        unique=("slug",),
        resolve=resolve_category,
        indexes=[
            _unique("slug"),
            ([("parent", 1), ("display_order", 1)], {}),
            ([("ancestors", 1)], {}),
            ([("path", 1)], {}),
            ([("status", 1)], {}),
        ],
    ),
    "tag": EntityDefinition(
        "tag", schemas.Tag,
        unique=("slug",),
        resolve=resolve_tag,
        recompute=counters.tag_counters,
        indexes=[
            _unique("slug"),
            ([("stats.total_usage", -1)], {}),
            ([("status", 1), ("is_trending", 1)], {}),
            ([("synonyms", 1)], {}),
        ],
    ),
    "product": EntityDefinition(
        "product", schemas.Product,
        unique=("slug", "sku", "variants.sku"),
        append_only=("price_history", "inventory_log", "sales_history"),
        resolve=resolve_product,
        recompute=counters.product_counters,
        indexes=[
            _unique("slug"),
            _unique("sku"),
            _unique("variants.sku", **_present("variants.sku")),
            ([("category", 1), ("status", 1), ("pricing.base_price", 1)], {}),
            ([("tags", 1)], {}),
            ([("sales_stats.total_sold", -1)], {}),
            ([("review_stats.average_rating", -1)], {}),
        ],
    ),
    "post": EntityDefinition(
        "post", schemas.Post,
        unique=("slug",),
        append_only=("revisions",),
        resolve=resolve_post,
        recompute=counters.post_counters,
        indexes=[
            _unique("slug"),
            ([("author", 1), ("created_at", -1)], {}),
            ([("status", 1), ("published_at", -1)], {}),
            ([("category", 1)], {}),
            ([("tags", 1)], {}),
        ],
    ),
    "order": EntityDefinition(
        "order", schemas.Order,
        unique=("order_number",),
        immutable=("order_number", "items"),
        append_only=("timeline",),
        resolve=resolve_order,
        recompute=counters.order_counters,
        indexes=[
            _unique("order_number"),
            ([("user", 1), ("status", 1), ("created_at", -1)], {}),
            ([("status", 1)], {}),
            ([("payment_status", 1)], {}),
            ([("created_at", -1)], {}),
            ([("items.product", 1)], {}),
        ],
    ),
    "review": EntityDefinition(
        "review", schemas.Review,
        resolve=associations.resolve,
        recompute=counters.review_counters,
        indexes=[
            ([("target.type", 1), ("target.id", 1), ("status", 1)], {}),
            ([("user", 1), ("created_at", -1)], {}),
            ([("helpfulness_score", -1)], {}),
        ],
    ),
}


def build_store(db: Database) -> EntityStore:
    return EntityStore(db, ENTITIES)
