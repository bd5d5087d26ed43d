"""
Review targets

A review points at exactly one product, post, user or order. Clients may
submit the flat form (``target_type`` plus one of four reference fields);
it is checked and folded into the tagged ``target`` the store keeps.
"""
from typing import Any, Dict, Optional

from errors import INVALID_REFERENCE, REQUIRED_FIELD, TARGET_MISMATCH, ValidationError

# target type -> flat reference field
REFERENCE_FIELDS = {
    "product": "product",
    "post": "post",
    "user": "target_user",
    "order": "order",
}

# target type -> collection holding the referenced document
TARGET_COLLECTIONS = {
    "product": "product",
    "post": "post",
    "user": "user",
    "order": "order",
}


def validate_target(doc: Dict[str, Any]) -> Optional[Dict[str, str]]:
    """Return the tagged target described by ``doc``'s flat fields, or None if none are given."""
    target_type = doc.get("target_type")
    populated = [field for field in REFERENCE_FIELDS.values() if doc.get(field)]
    if target_type is None and not populated:
        return None
    if target_type is None:
        raise ValidationError(REQUIRED_FIELD, "target_type", "target_type is required with a target reference")

    expected = REFERENCE_FIELDS[target_type]
    if populated != [expected]:
        offending = next((f for f in populated if f != expected), expected)
        raise ValidationError(
            TARGET_MISMATCH, offending,
            f"A {target_type} review must set exactly {expected}",
        )
    return {"type": target_type, "id": doc[expected]}


def resolve(store, doc: Dict[str, Any], previous: Optional[Dict[str, Any]]) -> None:
    flat = validate_target(doc)
    tagged = doc.get("target")
    for field in ("target_type",) + tuple(REFERENCE_FIELDS.values()):
        doc.pop(field, None)

    if flat is not None:
        # on update the flat form replaces the stored target
        if tagged and previous is None and tagged != flat:
            raise ValidationError(TARGET_MISMATCH, "target", "target disagrees with target_type")
        tagged = flat
    if not tagged:
        raise ValidationError(REQUIRED_FIELD, "target_type", "A review needs a target")
    doc["target"] = tagged

    if previous is not None and previous.get("target") == tagged:
        return
    collection = TARGET_COLLECTIONS[tagged["type"]]
    if not store.exists(collection, tagged["id"]):
        raise ValidationError(
            INVALID_REFERENCE, REFERENCE_FIELDS[tagged["type"]],
            f"{tagged['type'].capitalize()} not found: {tagged['id']}",
        )
