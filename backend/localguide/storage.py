from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .availability import normalize_working_hours
from .contracts import BusinessCreate, BusinessUpdate, ReviewCreate
from .db.core import get_session, init_db
from .db.models import (
    BusinessAmenityRecord,
    BusinessImageRecord,
    BusinessRecord,
    ReviewRecord,
    UserAchievementRecord,
    UserRecord,
    WorkingHoursRecord,
)
from .gamification import UserStats, calculate_level, newly_unlocked, points_for_action
from .metrics import achievements_unlocked_total, gamification_points_total
from .seed import seed_demo_data
from .settings import settings
from .validators import fold_text, make_slug

logger = logging.getLogger(__name__)

REVIEW_XP = 10
REQUIRED_BUSINESS_FIELDS = frozenset(
    {"name", "description", "category", "address", "city", "district", "lat", "lng", "price_range"}
)
REVIEW_SORTS = {
    "newest": (ReviewRecord.created_at.desc(),),
    "oldest": (ReviewRecord.created_at.asc(),),
    "rating_high": (ReviewRecord.rating.desc(), ReviewRecord.created_at.desc()),
    "rating_low": (ReviewRecord.rating.asc(), ReviewRecord.created_at.desc()),
    "helpful": (ReviewRecord.helpful_votes.desc(), ReviewRecord.created_at.desc()),
}


def _ensure_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _ensure_datetime(value).isoformat()


def _user_to_dict(record: UserRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "external_id": record.external_id,
        "email": record.email,
        "first_name": record.first_name,
        "last_name": record.last_name,
        "avatar": record.avatar,
        "bio": record.bio,
        "location": record.location,
        "website": record.website,
        "social_links": dict(record.social_links or {}),
        "level": record.level,
        "experience_points": record.experience_points,
        "total_reviews": record.total_reviews,
        "helpful_votes": record.helpful_votes,
        "total_photos": record.total_photos,
        "visited_businesses": record.visited_businesses,
        "following_count": record.following_count,
        "streak_days": record.streak_days,
        "created_at": _iso(record.created_at),
        "updated_at": _iso(record.updated_at),
    }


_BUSINESS_COLUMNS = (
    "id", "slug", "name", "description", "category", "subcategory", "address", "city",
    "district", "neighborhood", "lat", "lng", "phone", "website", "email", "owner_id",
    "verified", "is_premium", "avg_rating", "total_reviews", "total_check_ins",
    "health_score", "hygiene_score", "service_score", "value_score", "trend_score",
    "covid_safety", "price_range", "ai_summary",
)


def _business_to_dict(
    record: BusinessRecord,
    amenities: Iterable[str] = (),
    hours: Iterable[WorkingHoursRecord] = (),
    images: Iterable[BusinessImageRecord] = (),
) -> dict[str, Any]:
    payload = {column: getattr(record, column) for column in _BUSINESS_COLUMNS}
    payload["keywords"] = list(record.keywords or [])
    payload["amenities"] = sorted(amenities)
    payload["working_hours"] = [
        {
            "day": row.day,
            "open_time": row.open_time,
            "close_time": row.close_time,
            "is_closed": bool(row.is_closed),
        }
        for row in hours
    ]
    payload["images"] = [
        {
            "id": image.id,
            "url": image.url,
            "caption": image.caption,
            "ai_tags": list(image.ai_tags or []),
            "position": image.position,
        }
        for image in sorted(images, key=lambda image: image.position)
    ]
    payload["created_at"] = _iso(record.created_at)
    payload["updated_at"] = _iso(record.updated_at)
    return payload


def _review_to_dict(
    record: ReviewRecord,
    user: UserRecord | None = None,
    business: BusinessRecord | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": record.id,
        "user_id": record.user_id,
        "business_id": record.business_id,
        "rating": record.rating,
        "title": record.title,
        "content": record.content,
        "photos": list(record.photos or []),
        "visit_date": _iso(record.visit_date),
        "would_recommend": record.would_recommend,
        "category_ratings": record.category_ratings,
        "helpful_votes": record.helpful_votes,
        "ai_analysis": record.ai_analysis,
        "ai_analysis_date": _iso(record.ai_analysis_date),
        "created_at": _iso(record.created_at),
        "updated_at": _iso(record.updated_at),
    }
    if user is not None:
        payload["user"] = {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "avatar": user.avatar,
            "level": user.level,
            "total_reviews": user.total_reviews,
        }
    if business is not None:
        payload["business"] = {
            "id": business.id,
            "name": business.name,
            "slug": business.slug,
            "category": business.category,
            "city": business.city,
            "price_range": business.price_range,
        }
    return payload


def _name_from_claims(claims: Mapping[str, Any]) -> tuple[str | None, str | None]:
    first = claims.get("given_name") or claims.get("first_name")
    last = claims.get("family_name") or claims.get("last_name")
    if not first and claims.get("name"):
        parts = str(claims["name"]).split(" ", 1)
        first = parts[0]
        last = last or (parts[1] if len(parts) > 1 else None)
    return first, last


class Database:
    """
    Async data-access layer over the SQL store.

    Methods return plain snake_case dicts; HTTPException is raised for missing
    entities, ownership violations and uniqueness conflicts so routes can stay thin.
    """

    def __init__(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            try:
                asyncio.run(self._bootstrap())
            except Exception:
                logger.exception("Failed to initialise the local guide database")
        else:
            loop.create_task(self._bootstrap())

    async def _bootstrap(self) -> None:
        await init_db()
        if settings.SEED_DEMO_DATA:
            await self.seed()

    async def seed(self) -> int:
        async with get_session() as session:
            return await seed_demo_data(session)

    async def reset(self, *, seed: bool = True) -> None:
        """Drop every row and optionally load the demo dataset again."""
        async with get_session() as session:
            for model in (
                UserAchievementRecord,
                ReviewRecord,
                BusinessImageRecord,
                BusinessAmenityRecord,
                WorkingHoursRecord,
                BusinessRecord,
                UserRecord,
            ):
                await session.execute(delete(model))
            await session.commit()
        if seed:
            await self.seed()

    async def counts(self) -> dict[str, int]:
        async with get_session() as session:
            result: dict[str, int] = {}
            for key, model in (
                ("businesses", BusinessRecord),
                ("reviews", ReviewRecord),
                ("users", UserRecord),
            ):
                result[key] = int(await session.scalar(select(func.count(model.id))) or 0)
            return result

    # -------- users --------
    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        async with get_session() as session:
            record = await session.get(UserRecord, user_id)
            return _user_to_dict(record) if record else None

    async def get_user_by_external_id(self, external_id: str) -> dict[str, Any] | None:
        async with get_session() as session:
            record = await self._user_by_external_id(session, external_id)
            return _user_to_dict(record) if record else None

    @staticmethod
    async def _user_by_external_id(session: AsyncSession, external_id: str) -> UserRecord | None:
        result = await session.execute(
            select(UserRecord).where(UserRecord.external_id == external_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _email_available(
        session: AsyncSession, email: str | None, external_id: str
    ) -> bool:
        if not email:
            return False
        result = await session.execute(
            select(UserRecord.external_id).where(UserRecord.email == email)
        )
        owner = result.scalar_one_or_none()
        return owner is None or owner == external_id

    async def ensure_user(self, claims: Mapping[str, Any]) -> dict[str, Any]:
        """Return the user behind the token claims, creating it on first sight."""
        external_id = str(claims.get("sub") or "").strip()
        if not external_id:
            raise HTTPException(status_code=401, detail="Token is missing a subject")
        async with get_session() as session:
            record = await self._user_by_external_id(session, external_id)
            if record:
                return _user_to_dict(record)
            first, last = _name_from_claims(claims)
            email = claims.get("email")
            record = UserRecord(
                external_id=external_id,
                email=email if await self._email_available(session, email, external_id) else None,
                first_name=first,
                last_name=last,
                avatar=claims.get("picture") or claims.get("image_url"),
                social_links={},
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                # another request created the same user concurrently
                await session.rollback()
                record = await self._user_by_external_id(session, external_id)
                if record is None:
                    raise
            logger.info("Created user %s from token claims", record.id)
            return _user_to_dict(record)

    async def update_profile(self, user_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        async with get_session() as session:
            record = await session.get(UserRecord, user_id)
            if not record:
                raise HTTPException(status_code=404, detail="User not found")
            for field in ("bio", "location", "website", "social_links"):
                if field in changes:
                    value = changes[field]
                    setattr(record, field, value if field != "social_links" else (value or {}))
            await session.commit()
            return _user_to_dict(record)

    async def upsert_identity_user(
        self,
        external_id: str,
        *,
        email: str | None,
        first_name: str | None,
        last_name: str | None,
        avatar: str | None,
    ) -> tuple[dict[str, Any], bool]:
        """Create or refresh a user from identity-provider data; returns (user, created)."""
        async with get_session() as session:
            record = await self._user_by_external_id(session, external_id)
            created = record is None
            if created:
                record = UserRecord(external_id=external_id, social_links={})
                session.add(record)
            if await self._email_available(session, email, external_id):
                record.email = email
            record.first_name = first_name
            record.last_name = last_name
            record.avatar = avatar
            await session.commit()
            return _user_to_dict(record), created

    async def delete_user_by_external_id(self, external_id: str) -> bool:
        async with get_session() as session:
            record = await self._user_by_external_id(session, external_id)
            if not record:
                return False
            touched = await session.execute(
                select(ReviewRecord.business_id).where(ReviewRecord.user_id == record.id)
            )
            business_ids = set(touched.scalars().all())
            await session.execute(
                delete(UserAchievementRecord).where(UserAchievementRecord.user_id == record.id)
            )
            await session.execute(delete(ReviewRecord).where(ReviewRecord.user_id == record.id))
            await session.delete(record)
            await session.flush()
            for business_id in business_ids:
                await self._refresh_business_stats(session, business_id)
            await session.commit()
            return True

    # -------- gamification --------
    async def _earned_ids(self, session: AsyncSession, user_id: str) -> set[str]:
        result = await session.execute(
            select(UserAchievementRecord.achievement_id).where(
                UserAchievementRecord.user_id == user_id
            )
        )
        return set(result.scalars().all())

    async def _apply_points(
        self,
        session: AsyncSession,
        user: UserRecord,
        action: str,
        override: int | None = None,
    ) -> dict[str, Any]:
        points = points_for_action(action, user.level, override)
        user.experience_points = (user.experience_points or 0) + points
        user.level = calculate_level(
            user.experience_points, user.total_reviews or 0, user.helpful_votes or 0
        )
        stats = UserStats.from_payload(_user_to_dict(user), await self._earned_ids(session, user.id))
        unlocked = newly_unlocked(stats)
        now = datetime.now(UTC)
        for achievement in unlocked:
            session.add(
                UserAchievementRecord(user_id=user.id, achievement_id=achievement.id, earned_at=now)
            )
            achievements_unlocked_total.labels(achievement=achievement.id).inc()
        gamification_points_total.labels(action=action).inc(points)
        if unlocked:
            logger.info("User %s unlocked %s", user.id, ", ".join(a.id for a in unlocked))
        return {"points_earned": points, "new_achievements": unlocked}

    async def award_points(
        self, user_id: str, action: str, override: int | None = None
    ) -> dict[str, Any]:
        async with get_session() as session:
            user = await session.get(UserRecord, user_id)
            if not user:
                raise HTTPException(status_code=404, detail="User not found")
            award = await self._apply_points(session, user, action, override)
            await session.commit()
            award["user"] = _user_to_dict(user)
            return award

    async def earned_achievements(self, user_id: str) -> list[dict[str, Any]]:
        async with get_session() as session:
            result = await session.execute(
                select(UserAchievementRecord)
                .where(UserAchievementRecord.user_id == user_id)
                .order_by(UserAchievementRecord.earned_at.asc())
            )
            return [
                {"achievement_id": row.achievement_id, "earned_at": _iso(row.earned_at)}
                for row in result.scalars().all()
            ]

    # -------- businesses --------
    async def _attach_related(
        self, session: AsyncSession, records: list[BusinessRecord]
    ) -> list[dict[str, Any]]:
        if not records:
            return []
        ids = [record.id for record in records]
        amenities: dict[str, list[str]] = defaultdict(list)
        hours: dict[str, list[WorkingHoursRecord]] = defaultdict(list)
        images: dict[str, list[BusinessImageRecord]] = defaultdict(list)

        rows = await session.execute(
            select(BusinessAmenityRecord).where(BusinessAmenityRecord.business_id.in_(ids))
        )
        for row in rows.scalars().all():
            amenities[row.business_id].append(row.amenity)
        rows = await session.execute(
            select(WorkingHoursRecord).where(WorkingHoursRecord.business_id.in_(ids))
        )
        for row in rows.scalars().all():
            hours[row.business_id].append(row)
        rows = await session.execute(
            select(BusinessImageRecord).where(BusinessImageRecord.business_id.in_(ids))
        )
        for row in rows.scalars().all():
            images[row.business_id].append(row)

        return [
            _business_to_dict(record, amenities[record.id], hours[record.id], images[record.id])
            for record in records
        ]

    async def list_businesses(
        self,
        *,
        city: str | None = None,
        category: str | None = None,
        district: str | None = None,
        verified: bool | None = None,
        premium: bool | None = None,
        min_rating: float | None = None,
        price_ranges: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Candidate rows for listing, search and recommendations, related data attached."""
        stmt = select(BusinessRecord)
        if verified is not None:
            stmt = stmt.where(BusinessRecord.verified.is_(verified))
        if premium is not None:
            stmt = stmt.where(BusinessRecord.is_premium.is_(premium))
        if min_rating is not None:
            stmt = stmt.where(BusinessRecord.avg_rating >= min_rating)
        price_ranges = list(price_ranges or [])
        if price_ranges:
            stmt = stmt.where(BusinessRecord.price_range.in_(price_ranges))
        stmt = stmt.order_by(BusinessRecord.name.asc())

        async with get_session() as session:
            result = await session.execute(stmt)
            records = list(result.scalars().all())
            # Turkish case folding (İ/ı) is not portable in SQL, so text equality runs here
            for value, column in ((city, "city"), (category, "category"), (district, "district")):
                if value:
                    wanted = fold_text(value)
                    records = [r for r in records if fold_text(getattr(r, column)) == wanted]
            return await self._attach_related(session, records)

    async def _business_by_id_or_slug(
        self, session: AsyncSession, identifier: str
    ) -> BusinessRecord | None:
        record = await session.get(BusinessRecord, identifier)
        if record:
            return record
        result = await session.execute(
            select(BusinessRecord).where(BusinessRecord.slug == identifier.lower())
        )
        return result.scalar_one_or_none()

    async def get_business(self, identifier: str) -> dict[str, Any] | None:
        async with get_session() as session:
            record = await self._business_by_id_or_slug(session, identifier)
            if not record:
                return None
            return (await self._attach_related(session, [record]))[0]

    async def _unique_slug(self, session: AsyncSession, name: str, city: str) -> str:
        base = make_slug(name, city) or "business"
        slug = base
        counter = 2
        while await session.scalar(
            select(func.count(BusinessRecord.id)).where(BusinessRecord.slug == slug)
        ):
            slug = f"{base}-{counter}"
            counter += 1
        return slug

    @staticmethod
    def _replace_related(
        session: AsyncSession,
        business_id: str,
        *,
        amenities: list[str] | None,
        hours: list[dict[str, Any]] | None,
        photos: list[str] | None,
    ) -> None:
        for amenity in amenities or []:
            session.add(BusinessAmenityRecord(business_id=business_id, amenity=amenity))
        for row in hours or []:
            session.add(WorkingHoursRecord(business_id=business_id, **row))
        for position, url in enumerate(photos or []):
            session.add(BusinessImageRecord(business_id=business_id, url=url, position=position))

    async def create_business(self, payload: BusinessCreate, owner_id: str) -> dict[str, Any]:
        data = payload.model_dump(exclude={"amenities", "working_hours", "photos"})
        async with get_session() as session:
            record = BusinessRecord(
                **data,
                slug=await self._unique_slug(session, payload.name, payload.city),
                owner_id=owner_id,
                verified=False,
                is_premium=False,
            )
            record.keywords = list(payload.keywords or [])
            session.add(record)
            await session.flush()
            hours = (
                normalize_working_hours(payload.working_hours.model_dump())
                if payload.working_hours
                else []
            )
            self._replace_related(
                session,
                record.id,
                amenities=payload.amenities,
                hours=hours,
                photos=payload.photos,
            )
            await session.commit()
            logger.info("Created business %s (%s)", record.id, record.slug)
            return (await self._attach_related(session, [record]))[0]

    async def _owned_business(
        self, session: AsyncSession, identifier: str, owner_id: str
    ) -> BusinessRecord:
        record = await self._business_by_id_or_slug(session, identifier)
        if not record:
            raise HTTPException(status_code=404, detail="Business not found")
        if record.owner_id != owner_id:
            raise HTTPException(status_code=403, detail="You do not own this business")
        return record

    async def update_business(
        self, identifier: str, owner_id: str, payload: BusinessUpdate
    ) -> dict[str, Any]:
        async with get_session() as session:
            record = await self._owned_business(session, identifier, owner_id)
            for field, value in payload.changes().items():
                if field == "keywords":
                    value = list(value or [])
                if value is None and field in REQUIRED_BUSINESS_FIELDS:
                    continue
                setattr(record, field, value)

            fields = payload.model_fields_set
            if "amenities" in fields:
                await session.execute(
                    delete(BusinessAmenityRecord).where(BusinessAmenityRecord.business_id == record.id)
                )
            if "working_hours" in fields:
                await session.execute(
                    delete(WorkingHoursRecord).where(WorkingHoursRecord.business_id == record.id)
                )
            if "photos" in fields:
                await session.execute(
                    delete(BusinessImageRecord).where(BusinessImageRecord.business_id == record.id)
                )
            await session.flush()
            hours = None
            if "working_hours" in fields and payload.working_hours is not None:
                hours = normalize_working_hours(payload.working_hours.model_dump())
            self._replace_related(
                session,
                record.id,
                amenities=payload.amenities if "amenities" in fields else None,
                hours=hours,
                photos=payload.photos if "photos" in fields else None,
            )
            record.updated_at = datetime.now(UTC)
            await session.commit()
            return (await self._attach_related(session, [record]))[0]

    async def delete_business(self, identifier: str, owner_id: str) -> None:
        async with get_session() as session:
            record = await self._owned_business(session, identifier, owner_id)
            result = await session.execute(
                select(ReviewRecord).where(ReviewRecord.business_id == record.id)
            )
            for review in result.scalars().all():
                author = await session.get(UserRecord, review.user_id)
                if author:
                    self._retract_review_counters(author, review)
            for model in (
                ReviewRecord,
                BusinessImageRecord,
                BusinessAmenityRecord,
                WorkingHoursRecord,
            ):
                await session.execute(delete(model).where(model.business_id == record.id))
            await session.delete(record)
            await session.commit()
            logger.info("Deleted business %s", record.id)

    async def _refresh_business_stats(self, session: AsyncSession, business_id: str) -> None:
        count, average = (
            await session.execute(
                select(func.count(ReviewRecord.id), func.avg(ReviewRecord.rating)).where(
                    ReviewRecord.business_id == business_id
                )
            )
        ).one()
        business = await session.get(BusinessRecord, business_id)
        if business:
            business.total_reviews = int(count or 0)
            business.avg_rating = round(float(average or 0.0), 2)

    # -------- reviews --------
    async def _review_rows(
        self, session: AsyncSession, records: list[ReviewRecord]
    ) -> list[dict[str, Any]]:
        if not records:
            return []
        user_ids = {r.user_id for r in records}
        business_ids = {r.business_id for r in records}
        users = {
            u.id: u
            for u in (
                await session.execute(select(UserRecord).where(UserRecord.id.in_(user_ids)))
            ).scalars()
        }
        businesses = {
            b.id: b
            for b in (
                await session.execute(
                    select(BusinessRecord).where(BusinessRecord.id.in_(business_ids))
                )
            ).scalars()
        }
        return [
            _review_to_dict(r, users.get(r.user_id), businesses.get(r.business_id))
            for r in records
        ]

    async def list_reviews(
        self,
        *,
        business_id: str | None = None,
        user_id: str | None = None,
        min_rating: int | None = None,
        sort_by: str = "newest",
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        conditions = []
        if business_id:
            conditions.append(ReviewRecord.business_id == business_id)
        if user_id:
            conditions.append(ReviewRecord.user_id == user_id)
        if min_rating is not None:
            conditions.append(ReviewRecord.rating >= min_rating)
        ordering = REVIEW_SORTS.get(sort_by, REVIEW_SORTS["newest"])

        async with get_session() as session:
            total = await session.scalar(select(func.count(ReviewRecord.id)).where(*conditions))
            result = await session.execute(
                select(ReviewRecord)
                .where(*conditions)
                .order_by(*ordering)
                .limit(max(1, min(limit, 50)))
                .offset(max(0, offset))
            )
            rows = await self._review_rows(session, list(result.scalars().all()))
            return rows, int(total or 0)

    async def recent_reviews(self, business_id: str, limit: int = 5) -> list[dict[str, Any]]:
        rows, _ = await self.list_reviews(business_id=business_id, limit=limit)
        return rows

    async def reviews_for_insights(self, business_id: str, limit: int = 50) -> list[dict[str, Any]]:
        async with get_session() as session:
            result = await session.execute(
                select(ReviewRecord)
                .where(ReviewRecord.business_id == business_id)
                .order_by(ReviewRecord.created_at.desc())
                .limit(limit)
            )
            return [_review_to_dict(r) for r in result.scalars().all()]

    async def reviews_with_business_for_user(self, user_id: str) -> list[dict[str, Any]]:
        async with get_session() as session:
            result = await session.execute(
                select(ReviewRecord)
                .where(ReviewRecord.user_id == user_id)
                .order_by(ReviewRecord.created_at.desc())
            )
            return await self._review_rows(session, list(result.scalars().all()))

    async def get_review(self, review_id: str) -> dict[str, Any] | None:
        async with get_session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                return None
            return (await self._review_rows(session, [record]))[0]

    async def has_review(self, user_id: str, business_id: str) -> bool:
        async with get_session() as session:
            count = await session.scalar(
                select(func.count(ReviewRecord.id)).where(
                    ReviewRecord.user_id == user_id, ReviewRecord.business_id == business_id
                )
            )
            return bool(count)

    async def create_review(
        self, user_id: str, payload: ReviewCreate, analysis: dict[str, Any] | None
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Insert a review, update author counters and business stats; returns (review, award)."""
        async with get_session() as session:
            business = await self._business_by_id_or_slug(session, payload.business_id)
            if not business:
                raise HTTPException(status_code=404, detail="Business not found")
            user = await session.get(UserRecord, user_id)
            if not user:
                raise HTTPException(status_code=404, detail="User not found")
            duplicate = await session.scalar(
                select(func.count(ReviewRecord.id)).where(
                    ReviewRecord.user_id == user_id, ReviewRecord.business_id == business.id
                )
            )
            if duplicate:
                raise HTTPException(status_code=409, detail="You have already reviewed this business")

            photos = list(payload.photos or [])
            review = ReviewRecord(
                user_id=user_id,
                business_id=business.id,
                rating=payload.rating,
                title=payload.title,
                content=payload.content,
                photos=photos,
                visit_date=payload.visit_date,
                would_recommend=payload.would_recommend,
                category_ratings=(
                    payload.categories.model_dump(exclude_none=True) if payload.categories else None
                ),
                ai_analysis=analysis,
                ai_analysis_date=datetime.now(UTC) if analysis else None,
            )
            session.add(review)
            user.total_reviews = (user.total_reviews or 0) + 1
            user.total_photos = (user.total_photos or 0) + len(photos)
            user.visited_businesses = (user.visited_businesses or 0) + 1
            try:
                await session.flush()
            except IntegrityError as exc:
                await session.rollback()
                raise HTTPException(
                    status_code=409, detail="You have already reviewed this business"
                ) from exc
            award = await self._apply_points(session, user, "review")
            await self._refresh_business_stats(session, business.id)
            await session.commit()
            return _review_to_dict(review, user, business), award

    async def authorize_review_edit(self, review_id: str, user_id: str) -> dict[str, Any]:
        async with get_session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                raise HTTPException(status_code=404, detail="Review not found")
            if record.user_id != user_id:
                raise HTTPException(status_code=403, detail="You can only edit your own reviews")
            window = timedelta(days=settings.REVIEW_EDIT_WINDOW_DAYS)
            if datetime.now(UTC) - _ensure_datetime(record.created_at) > window:
                raise HTTPException(
                    status_code=400,
                    detail=f"Reviews can only be edited within {settings.REVIEW_EDIT_WINDOW_DAYS} days",
                )
            return _review_to_dict(record)

    async def update_review(
        self,
        review_id: str,
        changes: Mapping[str, Any],
        analysis: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with get_session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                raise HTTPException(status_code=404, detail="Review not found")
            author = await session.get(UserRecord, record.user_id)
            rating_changed = "rating" in changes and changes["rating"] != record.rating
            for field, value in changes.items():
                if field == "photos":
                    before = len(record.photos or [])
                    value = list(value or [])
                    if author:
                        author.total_photos = max(0, (author.total_photos or 0) - before + len(value))
                elif field == "categories":
                    field = "category_ratings"
                if value is None and field in {"rating", "title", "content"}:
                    continue
                setattr(record, field, value)
            if analysis is not None:
                record.ai_analysis = analysis
                record.ai_analysis_date = datetime.now(UTC)
            record.updated_at = datetime.now(UTC)
            await session.flush()
            if rating_changed:
                await self._refresh_business_stats(session, record.business_id)
            await session.commit()
            return (await self._review_rows(session, [record]))[0]

    @staticmethod
    def _retract_review_counters(author: UserRecord, review: ReviewRecord) -> None:
        author.total_reviews = max(0, (author.total_reviews or 0) - 1)
        author.experience_points = max(0, (author.experience_points or 0) - REVIEW_XP)
        author.total_photos = max(0, (author.total_photos or 0) - len(review.photos or []))
        author.visited_businesses = max(0, (author.visited_businesses or 0) - 1)

    async def delete_review(self, review_id: str, user_id: str) -> None:
        async with get_session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                raise HTTPException(status_code=404, detail="Review not found")
            if record.user_id != user_id:
                raise HTTPException(status_code=403, detail="You can only delete your own reviews")
            author = await session.get(UserRecord, record.user_id)
            if author:
                self._retract_review_counters(author, record)
            business_id = record.business_id
            await session.delete(record)
            await session.flush()
            await self._refresh_business_stats(session, business_id)
            await session.commit()

    async def mark_helpful(self, review_id: str, voter_id: str) -> dict[str, Any]:
        async with get_session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                raise HTTPException(status_code=404, detail="Review not found")
            if record.user_id == voter_id:
                raise HTTPException(status_code=403, detail="You cannot vote on your own review")
            record.helpful_votes = (record.helpful_votes or 0) + 1
            author = await session.get(UserRecord, record.user_id)
            if author:
                author.helpful_votes = (author.helpful_votes or 0) + 1
                await self._apply_points(session, author, "helpful_vote")
            await session.commit()
            return {"id": record.id, "helpful_votes": record.helpful_votes}

    async def set_review_analysis(self, review_id: str, analysis: dict[str, Any]) -> None:
        async with get_session() as session:
            record = await session.get(ReviewRecord, review_id)
            if not record:
                return
            record.ai_analysis = analysis
            record.ai_analysis_date = datetime.now(UTC)
            await session.commit()


DB = Database()
