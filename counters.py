"""
Denormalized counters

Two kinds of derived data live here.

Per-document counters are pure functions of a document's own nested
collections. The store applies them right before every write, so the
stored scalars always agree with the lists they summarize.

Cross-document counters (a category's product count, a user's order
total, a product's review stats) are separate best-effort writes issued
after the primary write succeeded. They are not atomic with it: a failure
is logged and the counter stays behind until the next change.
"""
import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Optional

from database import as_utc, now_utc, set_path
from errors import NotFound, StoreUnavailable

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200


def post_counters(doc: Dict[str, Any]) -> Dict[str, Any]:
    words = len((doc.get("content") or "").split())
    return {
        "stats.reactions_count": len(doc.get("reactions") or []),
        "stats.comments_count": len(doc.get("comments") or []),
        "stats.read_time": math.ceil(words / WORDS_PER_MINUTE),
    }


def _promotion_active(promotion: Dict[str, Any], now) -> bool:
    start, end = as_utc(promotion.get("start_date")), as_utc(promotion.get("end_date"))
    return start is not None and end is not None and start <= now <= end


def product_counters(doc: Dict[str, Any], now=None) -> Dict[str, Any]:
    now = now or now_utc()
    pricing = doc.get("pricing") or {}
    compare_at, base = pricing.get("compare_at_price"), pricing.get("base_price") or 0
    on_sale = any(_promotion_active(p, now) for p in doc.get("promotions") or []) or (
        compare_at is not None and compare_at > base
    )
    return {
        "has_variants": bool(doc.get("variants")),
        "flags.is_on_sale": on_sale,
    }


def tag_counters(doc: Dict[str, Any]) -> Dict[str, Any]:
    stats = doc.get("stats") or {}
    return {"stats.total_usage": (stats.get("product_count") or 0) + (stats.get("post_count") or 0)}


def review_counters(doc: Dict[str, Any]) -> Dict[str, Any]:
    votes = doc.get("votes") or []
    replies = doc.get("replies") or []
    helpful = sum(1 for v in votes if v.get("type") == "helpful")
    not_helpful = sum(1 for v in votes if v.get("type") == "not_helpful")
    return {
        "helpful_count": helpful,
        "not_helpful_count": not_helpful,
        "helpfulness_score": helpful - not_helpful,
        "reply_count": len(replies),
        "has_seller_reply": any(r.get("author_type") == "seller" or r.get("is_official") for r in replies),
        "flag_count": len(doc.get("flags") or []),
    }


def order_counters(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {"item_count": sum(item.get("quantity") or 0 for item in doc.get("items") or [])}


def apply(doc: Dict[str, Any], values: Dict[str, Any]) -> Dict[str, Any]:
    for path, value in values.items():
        set_path(doc, path, value)
    return doc


RECOMPUTE: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "post": post_counters,
    "product": product_counters,
    "tag": tag_counters,
    "review": review_counters,
    "order": order_counters,
}


# ---------------------------------
# Cross-document counters
# ---------------------------------

def rating_stats(reviews: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    reviews = list(reviews)
    overall = [r["rating"]["overall"] for r in reviews if (r.get("rating") or {}).get("overall")]
    total = len(overall)
    recommended = sum(1 for r in reviews if r.get("would_recommend"))
    return {
        "average_rating": round(sum(overall) / total, 2) if total else 0,
        "total_reviews": total,
        "rating_distribution": {str(i): overall.count(i) for i in range(1, 6)},
        "recommendation_percentage": round(recommended * 100 / len(reviews), 2) if reviews else 0,
        "verified_purchase_count": sum(1 for r in reviews if r.get("is_verified_purchase")),
    }


def _bump(store, entity_type: str, entity_id: Optional[str], deltas: Dict[str, float]) -> None:
    if not entity_id or not any(deltas.values()):
        return
    try:
        store.increment(entity_type, entity_id, deltas)
    except (NotFound, StoreUnavailable) as exc:
        logger.warning("Counter update on %s %s skipped: %s", entity_type, entity_id, exc)


def _ids(doc: Optional[Dict[str, Any]], field: str) -> set:
    if not doc:
        return set()
    value = doc.get(field)
    if isinstance(value, list):
        return {v for v in value if v}
    return {value} if value else set()


def _shift(store, entity_type: str, before: set, after: set, fields: List[str]) -> None:
    for entity_id in sorted(before - after):
        _bump(store, entity_type, entity_id, {f: -1 for f in fields})
    for entity_id in sorted(after - before):
        _bump(store, entity_type, entity_id, {f: 1 for f in fields})


def product_links_changed(store, before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> None:
    """Move category/tag product counts from ``before`` to ``after`` (either may be None)."""
    _shift(store, "category", _ids(before, "category"), _ids(after, "category"), ["stats.product_count"])
    _shift(store, "tag", _ids(before, "tags"), _ids(after, "tags"),
           ["stats.product_count", "stats.total_usage"])


def post_links_changed(store, before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> None:
    _shift(store, "category", _ids(before, "category"), _ids(after, "category"), ["stats.post_count"])
    _shift(store, "tag", _ids(before, "tags"), _ids(after, "tags"),
           ["stats.post_count", "stats.total_usage"])
    _shift(store, "user", _ids(before, "author"), _ids(after, "author"), ["stats.total_posts"])


def order_placed(store, order: Dict[str, Any]) -> None:
    total = (order.get("pricing") or {}).get("total") or 0
    _bump(store, "user", order.get("user"), {"stats.total_orders": 1, "stats.total_spent": total})


def refresh_product_review_stats(store, product_id: Optional[str]) -> None:
    if not product_id:
        return
    try:
        reviews = store.find_raw(
            "review", {"target.type": "product", "target.id": product_id, "status": "approved"}, limit=0
        )
        stats = rating_stats(reviews)
        stats.pop("verified_purchase_count")
        store.set_fields("product", product_id, {"review_stats": stats})
    except (NotFound, StoreUnavailable) as exc:
        logger.warning("Review stats refresh for product %s skipped: %s", product_id, exc)
