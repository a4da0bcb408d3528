from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)

from .core import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRecord(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    external_id = Column(String(128), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    avatar = Column(String(512), nullable=True)
    bio = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    website = Column(String(512), nullable=True)
    social_links = Column(JSON, nullable=False, default=dict, server_default=text("'{}'"))
    level = Column(String(20), nullable=False, default="BEGINNER", server_default=text("'BEGINNER'"))
    experience_points = Column(Integer, nullable=False, default=0, server_default=text("0"))
    total_reviews = Column(Integer, nullable=False, default=0, server_default=text("0"))
    helpful_votes = Column(Integer, nullable=False, default=0, server_default=text("0"))
    total_photos = Column(Integer, nullable=False, default=0, server_default=text("0"))
    visited_businesses = Column(Integer, nullable=False, default=0, server_default=text("0"))
    following_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    streak_days = Column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )


class BusinessRecord(Base):
    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(160), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(64), nullable=False, index=True)
    subcategory = Column(String(64), nullable=True)
    address = Column(String(255), nullable=False)
    city = Column(String(64), nullable=False, index=True)
    district = Column(String(64), nullable=False)
    neighborhood = Column(String(64), nullable=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    phone = Column(String(32), nullable=True)
    website = Column(String(512), nullable=True)
    email = Column(String(255), nullable=True)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    verified = Column(Boolean, nullable=False, default=False)
    is_premium = Column(Boolean, nullable=False, default=False)
    avg_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)
    total_check_ins = Column(Integer, nullable=False, default=0)
    health_score = Column(Float, nullable=False, default=0.0)
    hygiene_score = Column(Float, nullable=False, default=0.0)
    service_score = Column(Float, nullable=False, default=0.0)
    value_score = Column(Float, nullable=False, default=0.0)
    trend_score = Column(Float, nullable=False, default=0.0)
    covid_safety = Column(Boolean, nullable=False, default=False)
    price_range = Column(String(16), nullable=False, default="MODERATE")
    keywords = Column(JSON, nullable=False, default=list, server_default=text("'[]'"))
    ai_summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint("lat >= -90 AND lat <= 90", name="ck_business_lat"),
        CheckConstraint("lng >= -180 AND lng <= 180", name="ck_business_lng"),
    )


class WorkingHoursRecord(Base):
    __tablename__ = "working_hours"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(
        String(36), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day = Column(String(12), nullable=False)
    open_time = Column(String(5), nullable=True)
    close_time = Column(String(5), nullable=True)
    is_closed = Column(Boolean, nullable=False, default=False)

    __table_args__ = (UniqueConstraint("business_id", "day", name="uq_working_hours_day"),)


class BusinessAmenityRecord(Base):
    __tablename__ = "business_amenities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(
        String(36), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amenity = Column(String(32), nullable=False)

    __table_args__ = (UniqueConstraint("business_id", "amenity", name="uq_business_amenity"),)


class BusinessImageRecord(Base):
    __tablename__ = "business_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(
        String(36), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url = Column(String(1024), nullable=False)
    caption = Column(String(255), nullable=True)
    ai_tags = Column(JSON, nullable=False, default=list, server_default=text("'[]'"))
    position = Column(Integer, nullable=False, default=0)


class ReviewRecord(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    business_id = Column(
        String(36), ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    rating = Column(Integer, nullable=False)
    title = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    photos = Column(JSON, nullable=False, default=list, server_default=text("'[]'"))
    visit_date = Column(DateTime(timezone=True), nullable=True)
    would_recommend = Column(Boolean, nullable=True)
    category_ratings = Column(JSON, nullable=True)
    helpful_votes = Column(Integer, nullable=False, default=0)
    ai_analysis = Column(JSON, nullable=True)
    ai_analysis_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "business_id", name="uq_review_user_business"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),
    )


class UserAchievementRecord(Base):
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    achievement_id = Column(String(32), nullable=False)
    earned_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
