import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from errors import (APPEND_ONLY, DUPLICATE, IMMUTABLE_FIELD, INVALID_VALUE, LENGTH_BOUND, REQUIRED_FIELD,
                    NotFound, StoreUnavailable, ValidationError)
from store import _duplicate_field, sort_spec

USER = {
    "email": "Ada@Example.com",
    "username": "Ada_L",
    "password": "correct-horse",
    "profile": {"first_name": "Ada", "last_name": "Lovelace"},
}


def _user(**overrides):
    return {**USER, **overrides}


def _fails(call, *args):
    with pytest.raises(ValidationError) as info:
        call(*args)
    return info.value


def test_create_normalizes_and_hides_secrets(store):
    user = store.create("user", _user())
    assert user["email"] == "ada@example.com"
    assert user["username"] == "ada_l"
    assert "password" not in user
    assert "password_hash" not in user
    assert user["referral_code"] == "REF" + user["id"][-8:].upper()
    assert user["created_at"] == user["updated_at"]
    assert user["profile"]["full_name"] == "Ada Lovelace"

    stored = store.load("user", user["id"])
    assert stored["password_hash"].startswith("$2")
    assert "password" not in stored


def test_missing_required_field(store):
    draft = _user()
    del draft["email"]
    error = _fails(store.create, "user", draft)
    assert error.kind == REQUIRED_FIELD
    assert error.field == "email"


def test_nested_required_field_names_the_path(store):
    error = _fails(store.create, "user", _user(profile={"first_name": "Ada"}))
    assert error.kind == REQUIRED_FIELD
    assert error.field == "profile.last_name"


def test_length_bound(store):
    error = _fails(store.create, "user", _user(username="ab"))
    assert error.kind == LENGTH_BOUND
    assert error.field == "username"


def test_invalid_value(store):
    error = _fails(store.create, "user", _user(role="emperor"))
    assert error.kind == INVALID_VALUE
    assert error.field == "role"


def test_password_required_on_create(store):
    draft = _user()
    del draft["password"]
    error = _fails(store.create, "user", draft)
    assert error.kind == REQUIRED_FIELD
    assert error.field == "password"


def test_duplicate_email_is_case_insensitive(store):
    store.create("user", _user())
    error = _fails(store.create, "user", _user(email="ADA@example.COM", username="someone_else"))
    assert error.kind == DUPLICATE
    assert error.field == "email"


def test_duplicate_username(store):
    store.create("user", _user())
    error = _fails(store.create, "user", _user(email="other@example.com", username="ADA_L"))
    assert error.kind == DUPLICATE
    assert error.field == "username"


def test_get_unknown_and_malformed_ids(store):
    with pytest.raises(NotFound):
        store.get("user", str(ObjectId()))
    with pytest.raises(NotFound):
        store.get("user", "not-an-object-id")
    assert store.load("user", "not-an-object-id") is None


def test_update_is_a_partial_merge(store):
    user = store.create("user", _user(addresses=[{"city": "London", "country": "GB"}]))
    updated = store.update("user", user["id"], {"status": "active"})
    assert updated["status"] == "active"
    assert updated["username"] == "ada_l"
    assert updated["addresses"] == user["addresses"]
    assert updated["created_at"] == store.get("user", user["id"])["created_at"]

    replaced = store.update("user", user["id"], {"addresses": [{"city": "Paris", "country": "FR"}]})
    assert [a["city"] for a in replaced["addresses"]] == ["Paris"]


def test_update_keeps_password_hash_and_rehashes_new_password(store):
    user = store.create("user", _user())
    before = store.load("user", user["id"])["password_hash"]
    store.update("user", user["id"], {"status": "active"})
    assert store.load("user", user["id"])["password_hash"] == before
    store.update("user", user["id"], {"password": "another-secret"})
    assert store.load("user", user["id"])["password_hash"] != before


def test_password_hash_cannot_be_set_directly(store):
    error = _fails(store.create, "user", _user(password_hash="plaintext-secret"))
    assert (error.kind, error.field) == (INVALID_VALUE, "password_hash")
    assert store.find_raw("user", {"password_hash": "plaintext-secret"}) == []

    user = store.create("user", _user())
    error = _fails(store.update, "user", user["id"], {"password_hash": "plaintext-secret"})
    assert (error.kind, error.field) == (INVALID_VALUE, "password_hash")
    assert store.load("user", user["id"])["password_hash"].startswith("$2")


def test_update_validates_merged_document(store):
    user = store.create("user", _user())
    error = _fails(store.update, "user", user["id"], {"username": "x"})
    assert error.kind == LENGTH_BOUND


def test_update_unknown_id(store):
    with pytest.raises(NotFound):
        store.update("user", str(ObjectId()), {"status": "active"})


def test_referral_code_is_immutable(store):
    user = store.create("user", _user())
    error = _fails(store.update, "user", user["id"], {"referral_code": "REFHIJACKED"})
    assert error.kind == IMMUTABLE_FIELD
    assert error.field == "referral_code"
    # echoing the stored value back is fine
    assert store.update("user", user["id"], {"referral_code": user["referral_code"]})["referral_code"] == \
        user["referral_code"]


def test_delete(store):
    user = store.create("user", _user())
    store.delete("user", user["id"])
    with pytest.raises(NotFound):
        store.get("user", user["id"])
    with pytest.raises(NotFound):
        store.delete("user", user["id"])


def test_list_filter_sort_limit(store):
    for name in ("Gamma", "Alpha", "Beta"):
        store.create("tag", {"name": name})
    store.create("tag", {"name": "Hidden", "status": "inactive"})

    names = [t["name"] for t in store.list("tag", {"status": "active"}, sort="name")]
    assert names == ["Alpha", "Beta", "Gamma"]
    assert [t["name"] for t in store.list("tag", sort=[("name", -1)], limit=2)] == ["Hidden", "Gamma"]
    assert len(store.list("tag", limit=0)) == 4


def test_round_trip_keeps_supplied_and_derived_fields(store):
    category = store.create("category", {"name": "Audio"})
    draft = {
        "name": "Studio Headphones",
        "sku": "hp-100",
        "category": category["id"],
        "pricing": {"base_price": 80, "compare_at_price": 100},
        "variants": [{"sku": "hp-100-blk", "name": "Black", "price": 80, "stock": 4}],
    }
    created = store.create("product", draft)
    fetched = store.get("product", created["id"])
    assert fetched["name"] == draft["name"]
    assert fetched["sku"] == "HP-100"
    assert fetched["slug"] == "studio-headphones"
    assert fetched["category"] == category["id"]
    assert fetched["pricing"]["base_price"] == 80
    assert fetched["variants"][0]["sku"] == "HP-100-BLK"
    assert fetched["variants"][0]["id"] == created["variants"][0]["id"]
    assert fetched["has_variants"] is True
    assert fetched["flags"]["is_on_sale"] is True
    assert fetched["discount_percentage"] == 20
    assert fetched["total_stock"] == 4


def test_duplicate_sku_and_variant_sku(store):
    category = store.create("category", {"name": "Audio"})
    base = {"category": category["id"], "pricing": {"base_price": 10}}
    store.create("product", {**base, "name": "Cable", "sku": "cab-1",
                             "variants": [{"sku": "cab-1-red", "name": "Red", "price": 10}]})

    error = _fails(store.create, "product", {**base, "name": "Other", "sku": "CAB-1"})
    assert (error.kind, error.field) == (DUPLICATE, "sku")

    error = _fails(store.create, "product", {**base, "name": "Other", "sku": "cab-2",
                                             "variants": [{"sku": "CAB-1-RED", "name": "Red", "price": 10}]})
    assert (error.kind, error.field) == (DUPLICATE, "variants.sku")

    error = _fails(store.create, "product", {**base, "name": "Twins", "sku": "cab-3", "variants": [
        {"sku": "tw-1", "name": "A", "price": 1}, {"sku": "TW-1", "name": "B", "price": 1}]})
    assert (error.kind, error.field) == (DUPLICATE, "variants.sku")


def test_duplicate_slug_is_not_disambiguated_for_products(store):
    category = store.create("category", {"name": "Audio"})
    store.create("product", {"name": "Speaker", "sku": "sp-1", "category": category["id"],
                             "pricing": {"base_price": 10}})
    error = _fails(store.create, "product", {"name": "speaker!", "sku": "sp-2", "category": category["id"],
                                             "pricing": {"base_price": 10}})
    assert (error.kind, error.field) == (DUPLICATE, "slug")


def test_inventory_log_is_append_only(store):
    category = store.create("category", {"name": "Audio"})
    product = store.create("product", {
        "name": "Amp", "sku": "amp-1", "category": category["id"], "pricing": {"base_price": 10},
        "inventory_log": [{"type": "restock", "quantity": 5}],
    })
    log = product["inventory_log"]

    grown = store.update("product", product["id"], {"inventory_log": log + [{"type": "sale", "quantity": -1}]})
    assert len(grown["inventory_log"]) == 2

    error = _fails(store.update, "product", product["id"], {"inventory_log": [{**log[0], "quantity": 50}]})
    assert (error.kind, error.field) == (APPEND_ONLY, "inventory_log")
    error = _fails(store.update, "product", product["id"], {"inventory_log": []})
    assert error.kind == APPEND_ONLY


def test_counters_are_recomputed_on_every_write(store):
    review_target = store.create("user", _user())
    review = store.create("review", {
        "target": {"type": "user", "id": review_target["id"]},
        "user": "someone",
        "rating": {"overall": 4},
        "content": "Helpful and quick to reply.",
        "helpful_count": 99,
    })
    assert review["helpful_count"] == 0
    assert review["helpfulness_score"] == 0

    votes = [{"user": "a", "type": "helpful"}, {"user": "b", "type": "helpful"}, {"user": "c", "type": "not_helpful"}]
    review = store.update("review", review["id"], {"votes": votes})
    assert review["helpful_count"] == 2
    assert review["not_helpful_count"] == 1
    assert review["helpfulness_score"] == review["helpful_count"] - review["not_helpful_count"]


def test_increment_and_set_fields(store):
    tag = store.create("tag", {"name": "Audio"})
    store.increment("tag", tag["id"], {"stats.product_count": 2, "stats.total_usage": 2})
    store.set_fields("tag", tag["id"], {"is_trending": True})
    fetched = store.get("tag", tag["id"])
    assert fetched["stats"]["product_count"] == 2
    assert fetched["stats"]["total_usage"] == 2
    assert fetched["is_trending"] is True
    with pytest.raises(NotFound):
        store.increment("tag", str(ObjectId()), {"stats.product_count": 1})


def test_unknown_entity_type(store):
    with pytest.raises(ValueError):
        store.get("invoice", str(ObjectId()))


def test_sort_spec():
    assert sort_spec("-created_at, name") == [("created_at", -1), ("name", 1)]
    assert sort_spec([("level", 1)]) == [("level", 1)]
    assert sort_spec(None) is None
    assert sort_spec("") is None


def test_duplicate_key_error_names_the_field():
    exc = DuplicateKeyError("E11000 duplicate key error", 11000, {"keyPattern": {"email": 1}})
    assert _duplicate_field(exc) == "email"
    exc = DuplicateKeyError("E11000 duplicate key error collection: db.tag index: slug dup key", 11000)
    assert _duplicate_field(exc) == "slug"


def test_ensure_indexes(store, db):
    store.ensure_indexes()
    assert "email" in db["user"].index_information()
    assert "slug" in db["category"].index_information()
    assert db["product"].index_information()["sku"]["unique"] is True


def test_store_unavailable(broken_store):
    with pytest.raises(StoreUnavailable):
        broken_store.get("user", str(ObjectId()))
    with pytest.raises(StoreUnavailable):
        broken_store.list("tag")
