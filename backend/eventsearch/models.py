from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    cast,
    func,
    literal_column,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

# SQLite only auto-increments INTEGER primary keys.
PrimaryKey = BigInteger().with_variant(Integer, "sqlite")

RESPONSE_TIMES = ("within_1hr", "within_4hr", "within_24hr", "more_than_24hr")


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    vendor_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    business_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_type: Mapped[str] = mapped_column(String(64), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    area: Mapped[str | None] = mapped_column(String(128), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    pincode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    pricing_min: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pricing_max: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    pricing_average: Mapped[float | None] = mapped_column(Float, nullable=True)
    pricing_currency: Mapped[str] = mapped_column(String(8), nullable=False, default="INR")
    pricing_unit: Mapped[str] = mapped_column(String(32), nullable=False, default="per_event")
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    popularity_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    response_time: Mapped[str] = mapped_column(String(32), nullable=False, default="within_24hr")
    search_keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    featured_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(384), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    filter_values: Mapped[list["VendorFilterValue"]] = relationship(
        back_populates="vendor",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_vendors_rating_range"),
        CheckConstraint("pricing_min <= pricing_max", name="ck_vendors_pricing_order"),
        Index("ix_vendors_location", "lat", "lng"),
        Index("ix_vendors_service_type", "service_type"),
        Index("ix_vendors_city", "city"),
        Index("ix_vendors_area", "area"),
        Index("ix_vendors_contact_person", "contact_person"),
        Index("ix_vendors_verified", "verified"),
        Index("ix_vendors_is_active", "is_active"),
        Index("ix_vendors_pricing", "pricing_min", "pricing_max"),
        Index("ix_vendors_category_location_status", "service_type", "city", "verified", "is_active"),
    )

    @property
    def filters(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for row in self.filter_values:
            grouped.setdefault(row.filter_id, []).append(row.value)
        return grouped


class VendorFilterValue(Base):
    __tablename__ = "vendor_filter_values"

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    vendor_pk: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)
    filter_id: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[str] = mapped_column(String(128), nullable=False)

    vendor: Mapped[Vendor] = relationship(back_populates="filter_values")

    __table_args__ = (
        UniqueConstraint("vendor_pk", "filter_id", "value", name="uq_vendor_filter_value"),
        Index("ix_vendor_filter_values_lookup", "filter_id", "value", "vendor_pk"),
    )


class City(Base):
    __tablename__ = "cities"

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    osm_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    state: Mapped[str | None] = mapped_column(String(128), nullable=True)
    place_type: Mapped[str] = mapped_column(String(32), nullable=False, default="city")
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)
    population: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    area_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    areas_fetched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    areas: Mapped[list["Area"]] = relationship(back_populates="city", cascade="all, delete-orphan")

    __table_args__ = (Index("ix_cities_location", "lat", "lon"),)


class Area(Base):
    __tablename__ = "areas"

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True, autoincrement=True)
    osm_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, unique=True)
    city_id: Mapped[int] = mapped_column(ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)
    city_name: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    place_type: Mapped[str] = mapped_column(String(32), nullable=False, default="suburb")
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lon: Mapped[float] = mapped_column(Float, nullable=False)

    city: Mapped[City] = relationship(back_populates="areas")

    __table_args__ = (Index("ix_areas_location", "lat", "lon"),)


def _weighted_vector(column, weight: str):
    document = func.to_tsvector(literal_column("'english'::regconfig"), func.coalesce(column, literal_column("''")))
    return func.setweight(document, literal_column(f"'{weight}'"))


def vendor_search_document():
    """Weighted tsvector over the text-searchable vendor columns (PostgreSQL only)."""
    return (
        _weighted_vector(Vendor.name, "A")
        .op("||")(_weighted_vector(Vendor.business_name, "A"))
        .op("||")(_weighted_vector(Vendor.contact_person, "B"))
        .op("||")(_weighted_vector(cast(Vendor.search_keywords, Text), "C"))
        .op("||")(_weighted_vector(Vendor.description, "D"))
    )


Index("vendor_search_text_index", vendor_search_document(), postgresql_using="gin").ddl_if(dialect="postgresql")
Index("ix_vendors_rating_desc", Vendor.rating.desc())
Index("ix_vendors_location_category_rating", Vendor.city, Vendor.service_type, Vendor.rating.desc())
Index("ix_vendors_status_rating", Vendor.verified, Vendor.is_active, Vendor.rating.desc())

SEARCH_INDEX_NAMES = (
    "vendor_search_text_index",
    "ix_vendors_location",
    "ix_vendors_service_type",
    "ix_vendors_city",
    "ix_vendors_area",
    "ix_vendors_contact_person",
    "ix_vendors_verified",
    "ix_vendors_is_active",
    "ix_vendors_rating_desc",
    "ix_vendors_category_location_status",
    "ix_vendors_location_category_rating",
    "ix_vendors_status_rating",
    "ix_vendors_pricing",
)
