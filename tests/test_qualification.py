from decimal import Decimal
from uuid import uuid4

from swaply_rewards.services.rewards.qualification import (
    ListingSnapshot,
    QualificationRules,
    build_rules,
    evaluate_listing,
    normalize_images,
)


RULES = QualificationRules(min_price=Decimal("50"), min_image_count=2, qualifying_statuses=frozenset({"active"}))


def _listing(**overrides) -> ListingSnapshot:
    values = {
        "id": uuid4(),
        "user_id": uuid4(),
        "images": ("a.jpg", "b.jpg"),
        "title": "Road bike",
        "category": "sports",
        "city": "Lagos",
        "price": Decimal("120"),
        "status": "active",
        "is_active": True,
    }
    values.update(overrides)
    return ListingSnapshot(**values)


def test_complete_listing_qualifies() -> None:
    result = evaluate_listing(_listing(), RULES)

    assert result.qualified is True
    assert result.failures == ()
    assert result.reason is None


def test_every_failed_condition_is_reported() -> None:
    listing = _listing(images=("a.jpg",), title="  ", city=None, price=Decimal("10"), status="draft", is_active=False)

    result = evaluate_listing(listing, RULES)

    assert result.qualified is False
    assert result.reason == "not_qualified"
    assert set(result.failures) == {"images", "title", "city", "price", "status", "is_active"}
    assert result.detail["images"] == 1
    assert result.detail["minImages"] == 2
    assert result.detail["price"] == 10.0
    assert result.detail["minPrice"] == 50.0
    assert result.detail["requiredStatus"] == ["active"]


def test_single_failure_fails_whole_evaluation() -> None:
    result = evaluate_listing(_listing(category=""), RULES)

    assert result.qualified is False
    assert result.failures == ("category",)


def test_missing_price_fails() -> None:
    assert evaluate_listing(_listing(price=None), RULES).failures == ("price",)


def test_price_equal_to_minimum_qualifies() -> None:
    assert evaluate_listing(_listing(price=Decimal("50")), RULES).qualified is True


def test_unknown_active_flag_does_not_reject() -> None:
    assert evaluate_listing(_listing(is_active=None), RULES).qualified is True


def test_normalize_images_accepts_single_values() -> None:
    assert normalize_images(None) == ()
    assert normalize_images("") == ()
    assert normalize_images("cover.jpg") == ("cover.jpg",)
    assert normalize_images(["a", "b"]) == ("a", "b")


def test_build_rules_falls_back_to_defaults() -> None:
    rules = build_rules(
        {"min_image_count": "not-a-number"},
        default_min_price=50.0,
        default_min_image_count=2,
        qualifying_statuses=["active", "published"],
    )

    assert rules.min_price == Decimal("50.0")
    assert rules.min_image_count == 2
    assert rules.qualifying_statuses == frozenset({"active", "published"})


def test_build_rules_reads_campaign_overrides() -> None:
    rules = build_rules(
        {"min_listing_price": 75, "min_image_count": 3},
        default_min_price=50.0,
        default_min_image_count=2,
        qualifying_statuses=["active"],
    )

    assert rules.min_price == Decimal("75")
    assert rules.min_image_count == 3
