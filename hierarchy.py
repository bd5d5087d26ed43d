"""
Category hierarchy

Categories keep a materialized view of their position in the tree:
``ancestors`` (root first), ``level`` and a ``/``-joined ``path`` of slugs.
These are recomputed when a category's own parent or slug changes.
Descendants are only rewritten by an explicit ``refresh_descendants``.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, Iterator, List, Optional

from errors import INVALID_REFERENCE, NotFound, ValidationError

logger = logging.getLogger(__name__)

CATEGORY = "category"


def placement(slug: str, parent: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """ancestors/level/path for a category with ``slug`` placed under ``parent``."""
    if parent is None:
        return {"ancestors": [], "level": 0, "path": slug}
    return {
        "ancestors": list(parent.get("ancestors") or []) + [str(parent["_id"])],
        "level": (parent.get("level") or 0) + 1,
        "path": f"{parent.get('path') or parent['slug']}/{slug}",
    }


def resolve(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    """Recompute ``doc``'s hierarchy fields when its parent or slug moved."""
    if previous is not None and previous.get("parent") == doc.get("parent") \
            and previous.get("slug") == doc.get("slug"):
        return

    parent = None
    if doc.get("parent"):
        own_id = str(doc["_id"])
        if doc["parent"] == own_id:
            raise ValidationError(INVALID_REFERENCE, "parent", "A category cannot be its own parent")
        parent = store.load(CATEGORY, doc["parent"])
        if parent is None:
            raise ValidationError(INVALID_REFERENCE, "parent", f"Parent category not found: {doc['parent']}")
        if own_id in (parent.get("ancestors") or []):
            raise ValidationError(INVALID_REFERENCE, "parent", "A category cannot move under its own descendant")

    doc.update(placement(doc["slug"], parent))


def get_descendants(store, category_id: str) -> List[Dict[str, Any]]:
    return store.list(CATEGORY, {"ancestors": category_id}, sort=[("level", 1), ("display_order", 1)], limit=0)


def refresh_descendants(store, category_id: str) -> int:
    """Rewrite ancestors/level/path of every descendant, parents before children."""
    root = store.load(CATEGORY, category_id)
    if root is None:
        raise NotFound(CATEGORY, category_id)
    by_id = {str(root["_id"]): root}
    descendants = store.find_raw(CATEGORY, {"ancestors": category_id}, sort=[("level", 1)], limit=0)
    updated = 0
    for category in descendants:
        parent = by_id.get(category.get("parent")) or store.load(CATEGORY, category.get("parent"))
        fields = placement(category["slug"], parent)
        store.set_fields(CATEGORY, str(category["_id"]), fields)
        category.update(fields)
        by_id[str(category["_id"])] = category
        updated += 1
    logger.info("Refreshed %d descendants of category %s", updated, category_id)
    return updated


class CategoryTree:
    """Active categories nested under their parents.

    Nothing is read until iteration starts, and every iteration reads
    afresh, so one tree object can be walked any number of times.
    """

    def __init__(self, store):
        self._store = store

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        categories = self._store.list(
            CATEGORY, {"status": "active"}, sort=[("level", 1), ("display_order", 1)], limit=0
        )
        children = defaultdict(list)
        for category in categories:
            children[category.get("parent")].append(category)
        return self._branch(children, None)

    def _branch(self, children, parent_id) -> Iterator[Dict[str, Any]]:
        for category in children.get(parent_id, []):
            yield {**category, "children": list(self._branch(children, category["id"]))}
