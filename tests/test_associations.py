import pytest
from bson import ObjectId

from associations import validate_target
from errors import INVALID_REFERENCE, REQUIRED_FIELD, TARGET_MISMATCH, ValidationError


def _review(**fields):
    return {"user": "reviewer-1", "rating": {"overall": 4}, "content": "Solid value for the money.", **fields}


def test_validate_target_accepts_matching_reference():
    assert validate_target({"target_type": "product", "product": "p1"}) == {"type": "product", "id": "p1"}
    assert validate_target({"target_type": "user", "target_user": "u1"}) == {"type": "user", "id": "u1"}


def test_validate_target_without_flat_fields():
    assert validate_target({"target": {"type": "post", "id": "x"}}) is None


@pytest.mark.parametrize("doc,field", [
    ({"target_type": "product", "post": "x"}, "post"),
    ({"target_type": "product", "product": "p", "order": "o"}, "order"),
    ({"target_type": "order"}, "order"),
])
def test_validate_target_mismatch(doc, field):
    with pytest.raises(ValidationError) as info:
        validate_target(doc)
    assert info.value.kind == TARGET_MISMATCH
    assert info.value.field == field


def test_validate_target_needs_a_type():
    with pytest.raises(ValidationError) as info:
        validate_target({"product": "p1"})
    assert (info.value.kind, info.value.field) == (REQUIRED_FIELD, "target_type")


def test_flat_form_is_folded_into_tagged_target(domain, make_product):
    product = make_product()
    review = domain.reviews.create(_review(target_type="product", product=product["id"]))
    assert review["target"] == {"type": "product", "id": product["id"]}
    for field in ("target_type", "product", "post", "target_user", "order"):
        assert field not in domain.store.load("review", review["id"])


def test_product_review_with_post_reference_is_a_mismatch(domain, make_product):
    make_product()
    with pytest.raises(ValidationError) as info:
        domain.reviews.create(_review(target_type="product", post=str(ObjectId())))
    assert info.value.kind == TARGET_MISMATCH


def test_tagged_form_is_accepted(domain, make_user):
    seller = make_user()
    review = domain.reviews.create(_review(target={"type": "user", "id": seller["id"]}))
    assert review["target"] == {"type": "user", "id": seller["id"]}


def test_conflicting_flat_and_tagged_forms(domain, make_product):
    product = make_product()
    with pytest.raises(ValidationError) as info:
        domain.reviews.create(_review(target={"type": "post", "id": "x"}, target_type="product", product=product["id"]))
    assert info.value.kind == TARGET_MISMATCH


def test_target_must_exist(domain):
    with pytest.raises(ValidationError) as info:
        domain.reviews.create(_review(target_type="order", order=str(ObjectId())))
    assert (info.value.kind, info.value.field) == (INVALID_REFERENCE, "order")


def test_review_needs_a_target(domain):
    with pytest.raises(ValidationError) as info:
        domain.reviews.create(_review())
    assert info.value.kind == REQUIRED_FIELD


def test_update_can_retarget_with_flat_form(domain, make_product):
    first, second = make_product(), make_product()
    review = domain.reviews.create(_review(target_type="product", product=first["id"]))
    moved = domain.reviews.update(review["id"], {"target_type": "product", "product": second["id"]})
    assert moved["target"] == {"type": "product", "id": second["id"]}
    unchanged = domain.reviews.update(review["id"], {"title": "Updated"})
    assert unchanged["target"] == moved["target"]
