"""
Domain facade

One repository per entity type on top of the shared ``EntityStore``.
Repositories add the named queries and commands the API exposes and fire
the best-effort cross-document counter updates after successful writes.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import counters
import hierarchy
from config import Settings
from database import as_utc, now_utc
from errors import DUPLICATE, INVALID_REFERENCE, INVALID_TRANSITION, INVALID_VALUE, NotFound, ValidationError
from identifiers import slugify
from order_status import MACHINES, can_be_cancelled, parse
from store import DEFAULT_LIMIT, EntityStore, SortSpec

logger = logging.getLogger(__name__)


class Repository:
    entity_type: str = ""
    default_sort: SortSpec = "-created_at"

    def __init__(self, store: EntityStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        doc = self.store.create(self.entity_type, draft)
        self._created(doc)
        return doc

    def get(self, entity_id: str) -> Dict[str, Any]:
        return self.store.get(self.entity_type, entity_id)

    def update(self, entity_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        before = self._load(entity_id)
        doc = self.store.update(self.entity_type, entity_id, patch)
        self._updated(before, doc)
        return doc

    def delete(self, entity_id: str) -> None:
        before = self._load(entity_id)
        self.store.delete(self.entity_type, entity_id)
        self._deleted(before)

    def list(self, filter: Optional[Dict[str, Any]] = None, sort: SortSpec = None,
             limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.store.list(self.entity_type, filter, sort or self.default_sort, limit)

    def _load(self, entity_id: str) -> Dict[str, Any]:
        doc = self.store.load(self.entity_type, entity_id)
        if doc is None:
            raise NotFound(self.entity_type, entity_id)
        return doc

    # counter hooks, no-ops unless a repository keeps other documents in sync
    def _created(self, doc: Dict[str, Any]) -> None:
        pass

    def _updated(self, before: Dict[str, Any], doc: Dict[str, Any]) -> None:
        pass

    def _deleted(self, before: Dict[str, Any]) -> None:
        pass


class Users(Repository):
    entity_type = "user"

    def find_by_email(self, email: str) -> Dict[str, Any]:
        doc = self.store.find_one(self.entity_type, {"email": email.strip().lower()})
        if doc is None:
            raise NotFound(self.entity_type, email)
        return doc

    def find_active(self, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list({"status": "active"}, limit=limit)

    def top_contributors(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.list({"status": "active"}, sort=[("stats.reputation", -1), ("stats.total_posts", -1)], limit=limit)

    def _pair(self, user_id: str, target_id: str) -> None:
        if user_id == target_id:
            raise ValidationError(INVALID_REFERENCE, "following", "Users cannot follow themselves")
        for entity_id in (user_id, target_id):
            self._load(entity_id)

    def follow(self, user_id: str, target_id: str) -> Dict[str, Any]:
        self._pair(user_id, target_id)
        self.store.add_to_set(self.entity_type, user_id, "following", target_id)
        self.store.add_to_set(self.entity_type, target_id, "followers", user_id)
        logger.info("User %s follows %s", user_id, target_id)
        return self.get(user_id)

    def unfollow(self, user_id: str, target_id: str) -> Dict[str, Any]:
        self._pair(user_id, target_id)
        self.store.pull(self.entity_type, user_id, "following", target_id)
        self.store.pull(self.entity_type, target_id, "followers", user_id)
        logger.info("User %s unfollowed %s", user_id, target_id)
        return self.get(user_id)

    def is_following(self, user_id: str, target_id: str) -> bool:
        return target_id in (self._load(user_id).get("following") or [])

    def has_permission(self, user_id: str, permission: str) -> bool:
        user = self._load(user_id)
        if user.get("role") in ("admin", "super_admin"):
            return True
        return permission in (user.get("permissions") or [])


class Categories(Repository):
    entity_type = "category"
    default_sort = [("level", 1), ("display_order", 1)]

    def update(self, entity_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        before = self._load(entity_id)
        doc = self.store.update(self.entity_type, entity_id, patch)
        if self.settings.cascade_category_paths and before.get("path") != doc.get("path"):
            hierarchy.refresh_descendants(self.store, entity_id)
        return doc

    def tree(self) -> hierarchy.CategoryTree:
        return hierarchy.CategoryTree(self.store)

    def descendants(self, category_id: str) -> List[Dict[str, Any]]:
        self._load(category_id)
        return hierarchy.get_descendants(self.store, category_id)

    def refresh_descendants(self, category_id: str) -> int:
        return hierarchy.refresh_descendants(self.store, category_id)

    def roots(self) -> List[Dict[str, Any]]:
        return self.list({"parent": None, "status": "active"}, sort=[("display_order", 1)], limit=0)

    def find_by_slug(self, slug: str) -> Dict[str, Any]:
        doc = self.store.find_one(self.entity_type, {"slug": slugify(slug), "status": "active"})
        if doc is None:
            raise NotFound(self.entity_type, slug)
        return doc


class Tags(Repository):
    entity_type = "tag"
    default_sort = [("stats.total_usage", -1)]

    def find_or_create(self, name: str, **fields) -> Dict[str, Any]:
        slug = slugify(name)
        existing = self.store.find_one(self.entity_type, {"slug": slug})
        if existing is not None:
            return existing
        try:
            return self.create({"name": name, **fields})
        except ValidationError as exc:
            # lost a race with a concurrent create of the same tag
            if exc.kind != DUPLICATE:
                raise
            existing = self.store.find_one(self.entity_type, {"slug": slug})
            if existing is None:
                raise
            return existing

    def popular(self, limit: int = 20) -> List[Dict[str, Any]]:
        return self.list({"status": "active"}, sort=[("stats.total_usage", -1)], limit=limit)

    def trending(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.list({"status": "active", "is_trending": True}, sort=[("stats.trending_score", -1)], limit=limit)

    def search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        pattern = {"$regex": re.escape(query.strip()), "$options": "i"}
        return self.list({"status": "active", "$or": [{"name": pattern}, {"synonyms": pattern}]}, limit=limit)


class Products(Repository):
    entity_type = "product"

    def _created(self, doc):
        counters.product_links_changed(self.store, None, doc)

    def _updated(self, before, doc):
        counters.product_links_changed(self.store, before, doc)

    def _deleted(self, before):
        counters.product_links_changed(self.store, before, None)

    def find_active(self, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list({"status": "active", "visibility": "visible"}, limit=limit)

    def by_category(self, category_id: str, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list({"category": category_id, "status": "active"}, limit=limit)

    def best_sellers(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.list({"status": "active"}, sort=[("sales_stats.total_sold", -1)], limit=limit)

    def top_rated(self, limit: int = 10, min_reviews: int = 5) -> List[Dict[str, Any]]:
        return self.list(
            {"status": "active", "review_stats.total_reviews": {"$gte": min_reviews}},
            sort=[("review_stats.average_rating", -1), ("review_stats.total_reviews", -1)],
            limit=limit,
        )

    def adjust_stock(self, product_id: str, quantity: int, type: str = "adjustment",
                     variant_id: Optional[str] = None, **details) -> Dict[str, Any]:
        """Move stock by ``quantity`` (negative to remove) and log the movement."""
        product = self._load(product_id)
        patch: Dict[str, Any] = {}
        if variant_id:
            variants = [dict(v) for v in product.get("variants") or []]
            variant = next((v for v in variants if v.get("id") == variant_id), None)
            if variant is None:
                raise ValidationError(INVALID_REFERENCE, "variant_id", f"Variant not found: {variant_id}")
            previous = variant.get("stock") or 0
            variant["stock"] = previous + quantity
            patch["variants"] = variants
        else:
            inventory = dict(product.get("inventory") or {})
            previous = inventory.get("stock") or 0
            inventory["stock"] = previous + quantity
            patch["inventory"] = inventory
        new_stock = previous + quantity
        if new_stock < 0:
            raise ValidationError(INVALID_VALUE, "inventory.stock", f"Insufficient stock: {previous} available")

        patch["inventory_log"] = list(product.get("inventory_log") or []) + [{
            "type": type,
            "quantity": quantity,
            "previous_stock": previous,
            "new_stock": new_stock,
            "variant_id": variant_id,
            "timestamp": now_utc(),
            **details,
        }]
        return self.update(product_id, patch)

    def change_price(self, product_id: str, price: float, compare_at_price: Optional[float] = None,
                     changed_by: Optional[str] = None, reason: Optional[str] = None) -> Dict[str, Any]:
        product = self._load(product_id)
        pricing = dict(product.get("pricing") or {})
        pricing["base_price"] = price
        if compare_at_price is not None:
            pricing["compare_at_price"] = compare_at_price
        history = list(product.get("price_history") or []) + [{
            "price": price,
            "compare_at_price": pricing.get("compare_at_price"),
            "changed_by": changed_by,
            "reason": reason,
            "timestamp": now_utc(),
        }]
        return self.update(product_id, {"pricing": pricing, "price_history": history})


class Posts(Repository):
    entity_type = "post"

    def _created(self, doc):
        counters.post_links_changed(self.store, None, doc)

    def _updated(self, before, doc):
        counters.post_links_changed(self.store, before, doc)

    def _deleted(self, before):
        counters.post_links_changed(self.store, before, None)

    def _published(self, **extra) -> Dict[str, Any]:
        return {"status": "published", "published_at": {"$lte": now_utc()}, **extra}

    def find_published(self, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list(self._published(), sort="-published_at", limit=limit)

    def by_category(self, category_id: str, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list(self._published(category=category_id), sort="-published_at", limit=limit)

    def trending(self, days: int = 7, limit: int = 10) -> List[Dict[str, Any]]:
        since = now_utc() - timedelta(days=days)
        query = {"status": "published", "published_at": {"$gte": since, "$lte": now_utc()}}
        return self.list(query, sort=[("stats.views", -1), ("stats.reactions_count", -1)], limit=limit)

    def add_comment(self, post_id: str, author: str, content: str) -> Dict[str, Any]:
        post = self._load(post_id)
        if not post.get("allow_comments", True):
            raise ValidationError(INVALID_VALUE, "allow_comments", "Comments are disabled for this post")
        comments = list(post.get("comments") or [])
        comments.append({"author": author, "content": content, "created_at": now_utc()})
        return self.update(post_id, {"comments": comments})

    def add_reaction(self, post_id: str, user: str, type: str) -> Dict[str, Any]:
        """One reaction per user; reacting again replaces the previous one."""
        post = self._load(post_id)
        reactions = [r for r in post.get("reactions") or [] if r.get("user") != user]
        reactions.append({"user": user, "type": type, "created_at": now_utc()})
        return self.update(post_id, {"reactions": reactions})


class Orders(Repository):
    entity_type = "order"
    PERIOD_FORMATS = {"day": "%Y-%m-%d", "month": "%Y-%m", "year": "%Y"}

    def create(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        draft = dict(draft)
        if isinstance(draft.get("items"), list):
            draft["items"] = [self._snapshot(i, item) for i, item in enumerate(draft["items"])]
        return super().create(draft)

    def _snapshot(self, index: int, item: Any) -> Any:
        """Copy name, sku and price from the live product into items that omit them."""
        if not isinstance(item, dict) or all(item.get(k) is not None for k in ("name", "sku", "unit_price")):
            return item
        product = self.store.load("product", item.get("product"))
        if product is None:
            raise ValidationError(INVALID_REFERENCE, f"items.{index}.product", f"Product not found: {item.get('product')}")
        return {
            "name": product["name"],
            "sku": product["sku"],
            "unit_price": (product.get("pricing") or {}).get("base_price"),
            **{k: v for k, v in item.items() if v is not None},
        }

    def _created(self, doc):
        counters.order_placed(self.store, doc)

    def by_user(self, user_id: str, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list({"user": user_id}, limit=limit)

    def pending(self, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list({"status": "pending"}, sort="created_at", limit=limit)

    def by_date_range(self, start: datetime, end: datetime, limit: int = 0) -> List[Dict[str, Any]]:
        return self.list({"created_at": {"$gte": start, "$lte": end}}, limit=limit)

    def revenue_by_period(self, start: datetime, end: datetime, period: str = "day") -> List[Dict[str, Any]]:
        if period not in self.PERIOD_FORMATS:
            raise ValidationError(INVALID_VALUE, "period", f"period must be one of {', '.join(self.PERIOD_FORMATS)}")
        orders = self.store.find_raw(
            self.entity_type,
            {"created_at": {"$gte": start, "$lte": end}, "payment_status": "paid"},
            sort="created_at", limit=0,
        )
        buckets: Dict[str, Dict[str, Any]] = {}
        for order in orders:
            key = as_utc(order["created_at"]).strftime(self.PERIOD_FORMATS[period])
            bucket = buckets.setdefault(key, {"period": key, "revenue": 0.0, "orders": 0, "items": 0})
            bucket["revenue"] = round(bucket["revenue"] + ((order.get("pricing") or {}).get("total") or 0), 2)
            bucket["orders"] += 1
            bucket["items"] += order.get("item_count") or 0
        for bucket in buckets.values():
            bucket["average_order_value"] = round(bucket["revenue"] / bucket["orders"], 2)
        return list(buckets.values())

    def transition(self, order_id: str, machine: str, target: str) -> Dict[str, Any]:
        if machine not in MACHINES:
            raise ValidationError(INVALID_VALUE, "machine", f"Unknown status machine: {machine}")
        parse(machine, target)
        return self.update(order_id, {machine: target})

    def cancel(self, order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        order = self._load(order_id)
        if not can_be_cancelled(order.get("status")):
            raise ValidationError(INVALID_TRANSITION, "status", f"An order in status {order.get('status')} cannot be cancelled")
        patch: Dict[str, Any] = {"status": "cancelled"}
        if reason:
            patch["internal_notes"] = f"{order.get('internal_notes') or ''}\nCancelled: {reason}".strip()
        return self.update(order_id, patch)


class Reviews(Repository):
    entity_type = "review"

    @staticmethod
    def _product_id(doc: Optional[Dict[str, Any]]) -> Optional[str]:
        target = (doc or {}).get("target") or {}
        return target.get("id") if target.get("type") == "product" else None

    def _created(self, doc):
        counters.refresh_product_review_stats(self.store, self._product_id(doc))

    def _updated(self, before, doc):
        for product_id in {self._product_id(before), self._product_id(doc)}:
            counters.refresh_product_review_stats(self.store, product_id)

    def _deleted(self, before):
        counters.refresh_product_review_stats(self.store, self._product_id(before))

    def by_product(self, product_id: str, status: str = "approved", limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list(
            {"target.type": "product", "target.id": product_id, "status": status},
            sort=[("helpfulness_score", -1), ("created_at", -1)],
            limit=limit,
        )

    def by_user(self, user_id: str, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        return self.list({"user": user_id}, limit=limit)

    def product_rating_stats(self, product_id: str) -> Dict[str, Any]:
        reviews = self.store.find_raw(
            self.entity_type, {"target.type": "product", "target.id": product_id, "status": "approved"}, limit=0
        )
        return counters.rating_stats(reviews)

    def vote(self, review_id: str, user: str, type: str) -> Dict[str, Any]:
        """One vote per user; voting again replaces the previous vote."""
        review = self._load(review_id)
        votes = [v for v in review.get("votes") or [] if v.get("user") != user]
        votes.append({"user": user, "type": type, "created_at": now_utc()})
        return self.update(review_id, {"votes": votes})

    def reply(self, review_id: str, author: str, content: str, author_type: str = "customer",
              is_official: bool = False) -> Dict[str, Any]:
        review = self._load(review_id)
        replies = list(review.get("replies") or [])
        replies.append({
            "author": author,
            "author_type": author_type,
            "content": content,
            "is_official": is_official,
            "created_at": now_utc(),
        })
        return self.update(review_id, {"replies": replies})

    def flag(self, review_id: str, reason: str, user: Optional[str] = None,
             description: Optional[str] = None) -> Dict[str, Any]:
        review = self._load(review_id)
        flags = list(review.get("flags") or [])
        flags.append({"user": user, "reason": reason, "description": description, "created_at": now_utc()})
        return self.update(review_id, {"flags": flags})


class Domain:
    def __init__(self, store: EntityStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or Settings()
        self.users = Users(store, self.settings)
        self.categories = Categories(store, self.settings)
        self.tags = Tags(store, self.settings)
        self.products = Products(store, self.settings)
        self.posts = Posts(store, self.settings)
        self.orders = Orders(store, self.settings)
        self.reviews = Reviews(store, self.settings)

    def repository(self, collection: str) -> Repository:
        """``users`` / ``products`` / ... -> repository, as named in the URL."""
        repo = getattr(self, collection, None)
        if not isinstance(repo, Repository):
            raise NotFound("collection", collection)
        return repo
