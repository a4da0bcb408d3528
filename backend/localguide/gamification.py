"""Points, levels and achievements for contributor activity."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from .scoring import round_half_up

Action = Literal["review", "photo", "checkin", "helpful_vote", "follow", "share", "first_visit"]

ACTION_POINTS: dict[str, int] = {
    "review": 10,
    "photo": 5,
    "checkin": 3,
    "helpful_vote": 2,
    "follow": 1,
    "share": 2,
    "first_visit": 5,
}

LEVEL_MULTIPLIERS: dict[str, float] = {
    "BEGINNER": 1.0,
    "CONTRIBUTOR": 1.2,
    "REVIEWER": 1.5,
    "EXPERT": 1.8,
    "GURU": 2.0,
    "LOCAL_HERO": 2.5,
}

# (level, min xp, min reviews, min helpful votes), highest first
LEVEL_THRESHOLDS: tuple[tuple[str, int, int, int], ...] = (
    ("LOCAL_HERO", 10000, 500, 1000),
    ("GURU", 5000, 200, 500),
    ("EXPERT", 2000, 100, 200),
    ("REVIEWER", 500, 25, 50),
    ("CONTRIBUTOR", 100, 5, 0),
)

LEVEL_BANDS: dict[str, tuple[int, int | None]] = {
    "BEGINNER": (0, 100),
    "CONTRIBUTOR": (100, 500),
    "REVIEWER": (500, 2000),
    "EXPERT": (2000, 5000),
    "GURU": (5000, 10000),
    "LOCAL_HERO": (10000, None),
}

# requirement key -> user stats attribute
REQUIREMENT_FIELDS: dict[str, str] = {
    "reviews": "total_reviews",
    "photos": "total_photos",
    "businesses": "visited_businesses",
    "following": "following_count",
    "helpfulVotes": "helpful_votes",
    "streak": "streak_days",
    "experiencePoints": "experience_points",
}
PROGRESS_KEYS = ("reviews", "photos", "businesses", "helpfulVotes")


@dataclass(frozen=True, slots=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str
    points: int
    type: str
    requirement: Mapping[str, int]

    def as_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "points": self.points,
            "type": self.type,
            "requirement": dict(self.requirement),
        }


ACHIEVEMENTS: dict[str, Achievement] = {
    a.id: a
    for a in (
        Achievement("FIRST_REVIEW", "İlk Yorum", "İlk yorumunu yazdın!", "🎉", 50, "milestone", {"reviews": 1}),
        Achievement("REVIEW_VETERAN", "Yorum Veteranı", "10 yorum yazdın", "📝", 100, "milestone", {"reviews": 10}),
        Achievement("REVIEW_MASTER", "Yorum Ustası", "50 yorum yazdın", "🏆", 250, "milestone", {"reviews": 50}),
        Achievement("REVIEW_LEGEND", "Yorum Efsanesi", "100 yorum yazdın", "👑", 500, "milestone", {"reviews": 100}),
        Achievement(
            "PHOTO_ENTHUSIAST", "Fotoğraf Meraklısı", "10 fotoğraf paylaştın", "📸", 75, "activity", {"photos": 10}
        ),
        Achievement(
            "EXPLORER", "Kaşif", "25 farklı işletmeyi keşfettin", "🗺️", 150, "exploration", {"businesses": 25}
        ),
        Achievement(
            "SOCIAL_BUTTERFLY", "Sosyal Kelebek", "50 kişiyi takip ettin", "🦋", 100, "social", {"following": 50}
        ),
        Achievement(
            "HELPFUL_HERO", "Faydalı Kahraman", "100 faydalı oy aldın", "🦸", 200, "community", {"helpfulVotes": 100}
        ),
        Achievement(
            "STREAK_WARRIOR", "Seri Savaşçısı", "30 gün üst üste aktif oldun", "🔥", 300, "engagement", {"streak": 30}
        ),
        Achievement(
            "LOCAL_HERO",
            "Yerel Kahraman",
            "Şehrinin uzmanı oldun",
            "🏅",
            1000,
            "prestige",
            {"reviews": 200, "helpfulVotes": 500, "experiencePoints": 5000},
        ),
    )
}


@dataclass(slots=True)
class UserStats:
    experience_points: int = 0
    total_reviews: int = 0
    helpful_votes: int = 0
    total_photos: int = 0
    visited_businesses: int = 0
    following_count: int = 0
    streak_days: int = 0
    level: str = "BEGINNER"
    earned: set[str] = field(default_factory=set)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], earned: set[str] | None = None) -> UserStats:
        return cls(
            experience_points=int(payload.get("experience_points") or 0),
            total_reviews=int(payload.get("total_reviews") or 0),
            helpful_votes=int(payload.get("helpful_votes") or 0),
            total_photos=int(payload.get("total_photos") or 0),
            visited_businesses=int(payload.get("visited_businesses") or 0),
            following_count=int(payload.get("following_count") or 0),
            streak_days=int(payload.get("streak_days") or 0),
            level=payload.get("level") or "BEGINNER",
            earned=set(earned or ()),
        )


def level_multiplier(level: str | None) -> float:
    return LEVEL_MULTIPLIERS.get(level or "", 1.0)


def points_for_action(action: str, level: str | None, override: int | None = None) -> int:
    base = override or ACTION_POINTS.get(action, 0)
    return round_half_up(base * level_multiplier(level))


def calculate_level(experience_points: int, total_reviews: int, helpful_votes: int) -> str:
    for level, min_xp, min_reviews, min_helpful in LEVEL_THRESHOLDS:
        if (
            experience_points >= min_xp
            and total_reviews >= min_reviews
            and helpful_votes >= min_helpful
        ):
            return level
    return "BEGINNER"


def level_progress(level: str, experience_points: int) -> dict[str, Any]:
    band = LEVEL_BANDS.get(level)
    if band is None or band[1] is None:
        return {"progress": 100, "nextLevelPoints": None}
    low, high = band
    progress = (experience_points - low) / (high - low) * 100
    return {"progress": min(max(progress, 0.0), 100.0), "nextLevelPoints": high}


def requirement_met(achievement: Achievement, stats: UserStats) -> bool:
    for key, required in achievement.requirement.items():
        current = getattr(stats, REQUIREMENT_FIELDS[key], 0) or 0
        if current < required:
            return False
    return True


def achievement_progress(achievement: Achievement, stats: UserStats) -> int:
    progress = 0
    total = 0
    for key in PROGRESS_KEYS:
        required = achievement.requirement.get(key)
        if not required:
            continue
        current = getattr(stats, REQUIREMENT_FIELDS[key], 0) or 0
        progress += min(current, required)
        total += required
    return round_half_up(progress / total * 100) if total > 0 else 0


def newly_unlocked(stats: UserStats) -> list[Achievement]:
    return [
        achievement
        for achievement in ACHIEVEMENTS.values()
        if achievement.id not in stats.earned and requirement_met(achievement, stats)
    ]


def available_with_progress(stats: UserStats) -> list[dict[str, Any]]:
    items = []
    for achievement in ACHIEVEMENTS.values():
        if achievement.id in stats.earned:
            continue
        payload = achievement.as_payload()
        payload["progress"] = achievement_progress(achievement, stats)
        payload["isUnlocked"] = requirement_met(achievement, stats)
        items.append(payload)
    return items


def completion_rate(earned_count: int) -> int:
    return round_half_up(earned_count / len(ACHIEVEMENTS) * 100)


def award_message(points: int, new_achievements: int) -> str:
    if new_achievements > 0:
        return f"Congratulations! You earned {new_achievements} new badge(s)!"
    return f"You earned {points} points!"


__all__ = [
    "ACHIEVEMENTS",
    "ACTION_POINTS",
    "LEVEL_BANDS",
    "LEVEL_MULTIPLIERS",
    "Achievement",
    "Action",
    "UserStats",
    "achievement_progress",
    "available_with_progress",
    "award_message",
    "calculate_level",
    "completion_rate",
    "level_multiplier",
    "level_progress",
    "newly_unlocked",
    "points_for_action",
    "requirement_met",
]
