from __future__ import annotations

import logging
import math

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import Vendor
from ..schemas import CatalogOption, CatalogSuggestion, FilterStats, PriceRangeOption
from ..telemetry import instrument_stage

logger = logging.getLogger(__name__)

PRICE_BUCKETS = 5
RATING_THRESHOLDS = (4, 3, 2)
SUGGESTION_QUOTAS = {"vendor": 3, "service": 3, "city": 2}
SUGGESTION_PRIORITY = {"vendor": 3, "service": 2, "city": 1}

DEFAULT_PRICE_RANGES = (
    (0, 25_000),
    (25_000, 50_000),
    (50_000, 100_000),
    (100_000, 200_000),
    (200_000, 500_000),
)


def humanize_service_type(service_type: str) -> str:
    return " ".join(word.capitalize() for word in service_type.replace("-", "_").split("_") if word)


def _trim_number(value: float) -> str:
    return f"{value:.1f}".rstrip("0").rstrip(".")


def format_inr(amount: float) -> str:
    """Short rupee label: 150000 -> '₹1.5L', 25000 -> '₹25K', 800 -> '₹800'."""
    if amount >= 100_000:
        return f"₹{_trim_number(amount / 100_000)}L"
    if amount >= 1_000:
        return f"₹{_trim_number(amount / 1_000)}K"
    return f"₹{int(amount)}"


def price_range_option(low: float, high: float) -> PriceRangeOption:
    return PriceRangeOption(label=f"{format_inr(low)} - {format_inr(high)}", min=low, max=high)


def build_price_ranges(lowest: float | None, highest: float | None) -> list[PriceRangeOption]:
    if lowest is None or highest is None or highest <= 0:
        return [price_range_option(low, high) for low, high in DEFAULT_PRICE_RANGES]

    low = math.floor(lowest / 1000) * 1000
    high = math.ceil(highest / 1000) * 1000
    if high <= low:
        high = low + 1000 * PRICE_BUCKETS

    step = (high - low) / PRICE_BUCKETS
    bounds = [low + round(step * index / 1000) * 1000 for index in range(PRICE_BUCKETS)] + [high]
    ranges: list[PriceRangeOption] = []
    for start, end in zip(bounds, bounds[1:]):
        if end > start:
            ranges.append(price_range_option(start, end))
    return ranges


class CatalogService:
    """Aggregates over active vendors that back the dynamic filter endpoints."""

    @instrument_stage("db")
    def service_types(self, db: Session) -> list[CatalogOption]:
        count = func.count(Vendor.id)
        rows = db.execute(
            select(Vendor.service_type, count)
            .where(Vendor.is_active.is_(True))
            .group_by(Vendor.service_type)
            .order_by(count.desc(), Vendor.service_type)
        ).all()
        return [
            CatalogOption(value=service_type, label=humanize_service_type(service_type), count=total)
            for service_type, total in rows
        ]

    @instrument_stage("db")
    def cities(self, db: Session) -> list[CatalogOption]:
        rows = db.execute(
            select(Vendor.city, func.count(Vendor.id))
            .where(Vendor.is_active.is_(True))
            .group_by(Vendor.city)
            .order_by(Vendor.city)
        ).all()
        return [CatalogOption(value=city, label=city, count=total) for city, total in rows]

    @instrument_stage("db")
    def price_ranges(self, db: Session) -> list[PriceRangeOption]:
        lowest, highest = db.execute(
            select(func.min(Vendor.pricing_min), func.max(Vendor.pricing_max)).where(Vendor.is_active.is_(True))
        ).one()
        return build_price_ranges(lowest, highest)

    @instrument_stage("db")
    def search_suggestions(self, db: Session, query: str, limit: int = 8) -> list[CatalogSuggestion]:
        term = query.strip()
        active = Vendor.is_active.is_(True)
        suggestions: list[CatalogSuggestion] = []

        vendors = db.execute(
            select(Vendor)
            .where(active, Vendor.name.icontains(term, autoescape=True))
            .order_by(Vendor.rating.desc(), Vendor.id)
            .limit(SUGGESTION_QUOTAS["vendor"])
        ).scalars()
        for vendor in vendors:
            suggestions.append(
                CatalogSuggestion(
                    type="vendor",
                    value=vendor.name,
                    label=f"{vendor.name} ({humanize_service_type(vendor.service_type)}, {vendor.city})",
                    priority=SUGGESTION_PRIORITY["vendor"],
                    vendor_id=vendor.vendor_id,
                    service_type=vendor.service_type,
                    city=vendor.city,
                )
            )

        count = func.count(Vendor.id)
        service_rows = db.execute(
            select(Vendor.service_type, count)
            .where(active, Vendor.service_type.icontains(term.replace(" ", "_"), autoescape=True))
            .group_by(Vendor.service_type)
            .order_by(count.desc(), Vendor.service_type)
            .limit(SUGGESTION_QUOTAS["service"])
        ).all()
        for service_type, total in service_rows:
            suggestions.append(
                CatalogSuggestion(
                    type="service",
                    value=service_type,
                    label=humanize_service_type(service_type),
                    priority=SUGGESTION_PRIORITY["service"],
                    service_type=service_type,
                    count=total,
                )
            )

        city_rows = db.execute(
            select(Vendor.city, count)
            .where(active, Vendor.city.icontains(term, autoescape=True))
            .group_by(Vendor.city)
            .order_by(count.desc(), Vendor.city)
            .limit(SUGGESTION_QUOTAS["city"])
        ).all()
        for city, total in city_rows:
            suggestions.append(
                CatalogSuggestion(
                    type="city",
                    value=city,
                    label=city,
                    priority=SUGGESTION_PRIORITY["city"],
                    city=city,
                    count=total,
                )
            )

        suggestions.sort(key=lambda item: -item.priority)
        return suggestions[:limit]

    @instrument_stage("db")
    def filter_stats(self, db: Session) -> FilterStats:
        active = Vendor.is_active.is_(True)
        total = db.scalar(select(func.count()).select_from(Vendor).where(active)) or 0
        verified = db.scalar(select(func.count()).select_from(Vendor).where(active, Vendor.verified.is_(True))) or 0
        breakdown = {
            f"{threshold}+": db.scalar(
                select(func.count()).select_from(Vendor).where(active, Vendor.rating >= threshold)
            )
            or 0
            for threshold in RATING_THRESHOLDS
        }
        return FilterStats(verified=verified, total=total, rating_breakdown=breakdown)


catalog_service = CatalogService()
