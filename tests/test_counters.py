from datetime import timedelta

from counters import post_counters, product_counters, rating_stats, review_counters, tag_counters
from database import now_utc


def test_post_counters_follow_nested_lists():
    doc = {
        "content": " ".join(["word"] * 401),
        "comments": [{"author": "a", "content": "hi"}, {"author": "b", "content": "yo"}],
        "reactions": [{"user": "a", "type": "like"}] * 3,
    }
    assert post_counters(doc) == {
        "stats.reactions_count": 3,
        "stats.comments_count": 2,
        "stats.read_time": 3,
    }


def test_post_counters_on_empty_post():
    assert post_counters({"content": ""}) == {
        "stats.reactions_count": 0,
        "stats.comments_count": 0,
        "stats.read_time": 0,
    }


def test_review_counters():
    doc = {
        "votes": [{"user": str(i), "type": "helpful"} for i in range(3)] + [{"user": "x", "type": "not_helpful"}],
        "replies": [{"author": "s", "author_type": "seller", "content": "thanks"}],
        "flags": [{"reason": "spam"}],
    }
    values = review_counters(doc)
    assert values["helpful_count"] == 3
    assert values["not_helpful_count"] == 1
    assert values["helpfulness_score"] == values["helpful_count"] - values["not_helpful_count"]
    assert values["reply_count"] == 1
    assert values["has_seller_reply"] is True
    assert values["flag_count"] == 1


def test_product_counters():
    now = now_utc()
    plain = {"pricing": {"base_price": 50}}
    assert product_counters(plain, now) == {"has_variants": False, "flags.is_on_sale": False}

    discounted = {"pricing": {"base_price": 50, "compare_at_price": 80}, "variants": [{"sku": "A"}]}
    assert product_counters(discounted, now) == {"has_variants": True, "flags.is_on_sale": True}

    promoted = {
        "pricing": {"base_price": 50},
        "promotions": [{"type": "percentage", "value": 10,
                        "start_date": now - timedelta(days=1), "end_date": now + timedelta(days=1)}],
    }
    assert product_counters(promoted, now)["flags.is_on_sale"] is True

    expired = {
        "pricing": {"base_price": 50},
        "promotions": [{"type": "percentage", "value": 10,
                        "start_date": now - timedelta(days=5), "end_date": now - timedelta(days=1)}],
    }
    assert product_counters(expired, now)["flags.is_on_sale"] is False


def test_tag_total_usage():
    assert tag_counters({"stats": {"product_count": 4, "post_count": 3}}) == {"stats.total_usage": 7}
    assert tag_counters({}) == {"stats.total_usage": 0}


def test_rating_stats():
    reviews = [
        {"rating": {"overall": 5}, "would_recommend": True, "is_verified_purchase": True},
        {"rating": {"overall": 4}, "would_recommend": True},
        {"rating": {"overall": 4}, "would_recommend": False},
    ]
    stats = rating_stats(reviews)
    assert stats["average_rating"] == 4.33
    assert stats["total_reviews"] == 3
    assert stats["rating_distribution"] == {"1": 0, "2": 0, "3": 0, "4": 2, "5": 1}
    assert stats["recommendation_percentage"] == 66.67
    assert stats["verified_purchase_count"] == 1


def test_rating_stats_without_reviews():
    stats = rating_stats([])
    assert stats["average_rating"] == 0
    assert stats["total_reviews"] == 0
    assert stats["recommendation_percentage"] == 0
