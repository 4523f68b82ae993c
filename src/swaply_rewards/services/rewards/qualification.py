"""Listing eligibility checks for reward campaigns."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Sequence
from uuid import UUID


@dataclass(frozen=True)
class ListingSnapshot:
    id: UUID
    user_id: UUID
    images: tuple[Any, ...]
    title: str | None
    category: str | None
    city: str | None
    price: Decimal | None
    status: str | None
    is_active: bool | None

    @classmethod
    def from_record(cls, record: Any) -> "ListingSnapshot":
        return cls(
            id=record.id,
            user_id=record.user_id,
            images=normalize_images(record.images),
            title=record.title,
            category=record.category,
            city=record.city,
            price=_to_decimal(record.price),
            status=record.status,
            is_active=record.is_active,
        )


@dataclass(frozen=True)
class QualificationRules:
    min_price: Decimal
    min_image_count: int
    qualifying_statuses: frozenset[str] = frozenset({"active"})


@dataclass(frozen=True)
class QualificationResult:
    qualified: bool
    failures: tuple[str, ...] = ()
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def reason(self) -> str | None:
        return None if self.qualified else "not_qualified"


def normalize_images(value: Any) -> tuple[Any, ...]:
    """Accept a list, a single image, or nothing."""

    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    if isinstance(value, str) and not value.strip():
        return ()
    return (value,)


def evaluate_listing(listing: ListingSnapshot, rules: QualificationRules) -> QualificationResult:
    """Evaluate every eligibility condition; the listing qualifies only if all pass."""

    failures: list[str] = []
    image_count = len(listing.images)

    if image_count < rules.min_image_count:
        failures.append("images")
    for name in ("title", "category", "city"):
        if _blank(getattr(listing, name)):
            failures.append(name)
    if listing.price is None or listing.price < rules.min_price:
        failures.append("price")
    if listing.status not in rules.qualifying_statuses:
        failures.append("status")
    if listing.is_active is False:
        failures.append("is_active")

    detail = {
        "images": image_count,
        "minImages": rules.min_image_count,
        "price": float(listing.price) if listing.price is not None else None,
        "minPrice": float(rules.min_price),
        "status": listing.status,
        "requiredStatus": sorted(rules.qualifying_statuses),
        "isActive": listing.is_active,
        "failedChecks": list(failures),
    }
    return QualificationResult(qualified=not failures, failures=tuple(failures), detail=detail)


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def build_rules(
    raw: dict[str, Any] | None,
    *,
    default_min_price: float,
    default_min_image_count: int,
    qualifying_statuses: Sequence[str] | Iterable[str],
) -> QualificationRules:
    raw = raw or {}
    min_price = _to_decimal(raw.get("min_listing_price")) or Decimal(str(default_min_price))
    try:
        min_images = int(raw.get("min_image_count") or default_min_image_count)
    except (TypeError, ValueError):
        min_images = default_min_image_count
    return QualificationRules(
        min_price=min_price,
        min_image_count=min_images,
        qualifying_statuses=frozenset(qualifying_statuses),
    )


__all__ = [
    "ListingSnapshot",
    "QualificationResult",
    "QualificationRules",
    "build_rules",
    "evaluate_listing",
    "normalize_images",
]
