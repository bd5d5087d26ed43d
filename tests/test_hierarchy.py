import pytest

from config import Settings
from domain import Domain
from errors import DUPLICATE, INVALID_REFERENCE, NotFound, ValidationError
from hierarchy import CategoryTree, placement


def test_root_and_child_placement(make_category):
    electronics = make_category("Electronics")
    assert electronics["slug"] == "electronics"
    assert electronics["level"] == 0
    assert electronics["ancestors"] == []
    assert electronics["path"] == "electronics"
    assert electronics["is_root"] is True

    phones = make_category("Phones", parent=electronics["id"])
    assert phones["slug"] == "phones"
    assert phones["level"] == 1
    assert phones["ancestors"] == [electronics["id"]]
    assert phones["path"] == "electronics/phones"
    assert phones["is_root"] is False


def test_placement_extends_parent_chain(make_category):
    electronics = make_category("Electronics")
    phones = make_category("Phones", parent=electronics["id"])
    android = make_category("Android Phones", parent=phones["id"])
    assert android["level"] == phones["level"] + 1
    assert android["ancestors"] == phones["ancestors"] + [phones["id"]]
    assert android["path"] == "electronics/phones/android-phones"


def test_placement_helper():
    parent = {"_id": "p1", "ancestors": ["r1"], "level": 1, "path": "root/parent", "slug": "parent"}
    assert placement("child", parent) == {"ancestors": ["r1", "p1"], "level": 2, "path": "root/parent/child"}
    assert placement("root", None) == {"ancestors": [], "level": 0, "path": "root"}


def test_moving_a_category_recomputes_its_placement(domain, make_category):
    electronics = make_category("Electronics")
    audio = make_category("Audio")
    moved = domain.categories.update(audio["id"], {"parent": electronics["id"]})
    assert moved["ancestors"] == [electronics["id"]]
    assert moved["level"] == 1
    assert moved["path"] == "electronics/audio"

    back = domain.categories.update(audio["id"], {"parent": None})
    assert (back["ancestors"], back["level"], back["path"]) == ([], 0, "audio")


def test_missing_parent(make_category):
    with pytest.raises(ValidationError) as info:
        make_category("Orphans", parent="507f1f77bcf86cd799439011")
    assert info.value.kind == INVALID_REFERENCE
    assert info.value.field == "parent"


def test_cycles_are_rejected(domain, make_category):
    electronics = make_category("Electronics")
    phones = make_category("Phones", parent=electronics["id"])

    with pytest.raises(ValidationError) as info:
        domain.categories.update(electronics["id"], {"parent": electronics["id"]})
    assert info.value.kind == INVALID_REFERENCE

    with pytest.raises(ValidationError) as info:
        domain.categories.update(electronics["id"], {"parent": phones["id"]})
    assert info.value.kind == INVALID_REFERENCE


def test_duplicate_category_slug_fails(make_category):
    make_category("Electronics")
    with pytest.raises(ValidationError) as info:
        make_category("electronics")
    assert (info.value.kind, info.value.field) == (DUPLICATE, "slug")


def test_descendants_stay_stale_until_refreshed(domain, make_category):
    electronics = make_category("Electronics")
    phones = make_category("Phones", parent=electronics["id"])
    android = make_category("Android", parent=phones["id"])

    renamed = domain.categories.update(electronics["id"], {"slug": "gadgets"})
    assert renamed["path"] == "gadgets"
    assert domain.categories.get(phones["id"])["path"] == "electronics/phones"

    assert domain.categories.refresh_descendants(electronics["id"]) == 2
    assert domain.categories.get(phones["id"])["path"] == "gadgets/phones"
    assert domain.categories.get(android["id"])["path"] == "gadgets/phones/android"
    assert domain.categories.get(android["id"])["ancestors"] == [electronics["id"], phones["id"]]


def test_cascade_setting_refreshes_descendants_on_update(store):
    domain = Domain(store, Settings(cascade_category_paths=True))
    electronics = domain.categories.create({"name": "Electronics"})
    phones = domain.categories.create({"name": "Phones", "parent": electronics["id"]})

    domain.categories.update(electronics["id"], {"slug": "gadgets"})
    assert domain.categories.get(phones["id"])["path"] == "gadgets/phones"


def test_get_descendants(domain, make_category):
    electronics = make_category("Electronics")
    phones = make_category("Phones", parent=electronics["id"], display_order=2)
    laptops = make_category("Laptops", parent=electronics["id"], display_order=1)
    android = make_category("Android", parent=phones["id"])
    make_category("Garden")

    found = [c["id"] for c in domain.categories.descendants(electronics["id"])]
    assert found == [laptops["id"], phones["id"], android["id"]]
    assert domain.categories.descendants(android["id"]) == []


def test_tree_is_nested_ordered_and_restartable(store, make_category):
    electronics = make_category("Electronics")
    make_category("Phones", parent=electronics["id"], display_order=2)
    make_category("Laptops", parent=electronics["id"], display_order=1)
    make_category("Garden", display_order=1)
    make_category("Archive", status="inactive")

    tree = CategoryTree(store)
    first = list(tree)
    assert [c["name"] for c in first] == ["Electronics", "Garden"]
    assert [c["name"] for c in first[0]["children"]] == ["Laptops", "Phones"]
    assert first[1]["children"] == []
    assert [c["id"] for c in tree] == [c["id"] for c in first]


def test_roots_and_find_by_slug(domain, make_category):
    electronics = make_category("Electronics", display_order=2)
    garden = make_category("Garden", display_order=1)
    make_category("Phones", parent=electronics["id"])
    assert [c["id"] for c in domain.categories.roots()] == [garden["id"], electronics["id"]]
    assert domain.categories.find_by_slug("Electronics")["id"] == electronics["id"]
    make_category("Archive", status="inactive")
    with pytest.raises(NotFound):
        domain.categories.find_by_slug("archive")


def test_blank_parent_makes_a_root(domain, make_category):
    loose = make_category("Loose", parent="")
    assert loose["parent"] is None
    assert loose["level"] == 0
    assert [c["id"] for c in domain.categories.roots()] == [loose["id"]]
    assert [c["id"] for c in domain.categories.tree()] == [loose["id"]]


def test_supplied_slug_is_slugified(make_category):
    electronics = make_category("Electronics")
    phones = make_category("Phones", slug="Smart Phones!", parent=electronics["id"])
    assert phones["slug"] == "smart-phones"
    assert phones["path"] == "electronics/smart-phones"
