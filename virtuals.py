"""
Read-time virtual fields

Computed on serialization only, never stored.
"""
from datetime import date
from typing import Any, Dict, Optional

from database import as_utc, now_utc
from order_status import can_be_cancelled


def _age(date_of_birth, today: date) -> Optional[int]:
    if not date_of_birth:
        return None
    born = date_of_birth.date() if hasattr(date_of_birth, "date") else date_of_birth
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def user(doc: Dict[str, Any], now) -> Dict[str, Any]:
    profile = doc.get("profile") or {}
    doc["profile"] = {
        **profile,
        "full_name": f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip(),
        "age": _age(profile.get("date_of_birth"), now.date()),
    }
    membership = doc.get("membership") or {}
    end_date = as_utc(membership.get("end_date"))
    return {
        "followers_count": len(doc.get("followers") or []),
        "following_count": len(doc.get("following") or []),
        "is_premium": membership.get("type") in ("premium", "enterprise") and end_date is not None and end_date > now,
    }


def category(doc: Dict[str, Any], now) -> Dict[str, Any]:
    return {
        "is_root": not doc.get("parent"),
        "full_path": doc.get("path") or doc.get("slug"),
    }


def _current_price(doc: Dict[str, Any], now) -> float:
    base = (doc.get("pricing") or {}).get("base_price") or 0
    for promo in doc.get("promotions") or []:
        start, end = as_utc(promo.get("start_date")), as_utc(promo.get("end_date"))
        if not (start and end and start <= now <= end):
            continue
        if promo.get("usage_limit") and (promo.get("usage_count") or 0) >= promo["usage_limit"]:
            continue
        if promo.get("type") == "percentage":
            return base * (1 - (promo.get("value") or 0) / 100)
        if promo.get("type") == "fixed":
            return base - (promo.get("value") or 0)
        return base
    return base


def product(doc: Dict[str, Any], now) -> Dict[str, Any]:
    pricing = doc.get("pricing") or {}
    inventory = doc.get("inventory") or {}
    variants = doc.get("variants") or []
    base, compare_at, cost = pricing.get("base_price") or 0, pricing.get("compare_at_price"), pricing.get("cost")
    images = doc.get("images") or []

    if doc.get("has_variants"):
        in_stock = any((v.get("stock") or 0) > 0 and v.get("is_active", True) for v in variants)
        total_stock = sum(v.get("stock") or 0 for v in variants)
        low_stock = any(0 < (v.get("stock") or 0) <= (v.get("low_stock_threshold") or 0) for v in variants)
    else:
        stock = inventory.get("stock") or 0
        in_stock = stock > 0
        total_stock = stock
        low_stock = 0 < stock <= (inventory.get("low_stock_threshold") or 0)

    return {
        "is_in_stock": in_stock,
        "total_stock": total_stock,
        "current_price": _current_price(doc, now),
        "discount_percentage": round((1 - base / compare_at) * 100) if compare_at and compare_at > base else 0,
        "profit_margin": (base - cost) / base * 100 if cost and base else None,
        "primary_image": next((img for img in images if img.get("is_primary")), images[0] if images else None),
        "is_low_stock": low_stock,
    }


def post(doc: Dict[str, Any], now) -> Dict[str, Any]:
    stats = doc.get("stats") or {}
    breakdown: Dict[str, int] = {}
    for reaction in doc.get("reactions") or []:
        breakdown[reaction["type"]] = breakdown.get(reaction["type"], 0) + 1
    published_at = as_utc(doc.get("published_at"))
    return {
        "is_published": doc.get("status") == "published" and published_at is not None and published_at <= now,
        "total_engagement": (stats.get("reactions_count") or 0) + (stats.get("comments_count") or 0)
        + (stats.get("shares_count") or 0),
        "word_count": len((doc.get("content") or "").split()),
        "reaction_breakdown": breakdown,
    }


def order(doc: Dict[str, Any], now) -> Dict[str, Any]:
    created_at = as_utc(doc.get("created_at"))
    return {
        "total_quantity": sum(item.get("quantity") or 0 for item in doc.get("items") or []),
        "is_paid": doc.get("payment_status") == "paid",
        "can_be_cancelled": can_be_cancelled(doc.get("status")),
        "days_since_order": (now - created_at).days if created_at else None,
    }


def review(doc: Dict[str, Any], now) -> Dict[str, Any]:
    ratings = [v for v in (doc.get("rating") or {}).values() if isinstance(v, (int, float)) and 1 <= v <= 5]
    helpful, not_helpful = doc.get("helpful_count") or 0, doc.get("not_helpful_count") or 0
    return {
        "average_rating": sum(ratings) / len(ratings) if ratings else None,
        "has_media": bool(doc.get("media")),
        "helpfulness_ratio": helpful / (helpful + not_helpful) if helpful + not_helpful else 0,
    }


VIRTUALS = {
    "user": user,
    "category": category,
    "product": product,
    "post": post,
    "order": order,
    "review": review,
}


def with_virtuals(entity_type: str, doc: Dict[str, Any], now=None) -> Dict[str, Any]:
    compute = VIRTUALS.get(entity_type)
    if compute is None or not doc:
        return doc
    doc.update(compute(doc, now or now_utc()))
    return doc
