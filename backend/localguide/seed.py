"""Demo directory entries loaded into an empty database."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .catalog import WEEKDAYS
from .db.models import (
    BusinessAmenityRecord,
    BusinessImageRecord,
    BusinessRecord,
    WorkingHoursRecord,
)

logger = logging.getLogger(__name__)

DEMO_IMAGES = (
    ("https://images.unsplash.com/photo-1565299624946-b28f40a0ca4b?w=400&h=300&fit=crop", "İç mekan"),
    ("https://images.unsplash.com/photo-1517248135467-4c7edcad34c4?w=400&h=300&fit=crop", "Dış görünüm"),
    ("https://images.unsplash.com/photo-1466978913421-dad2ebd01d17?w=400&h=300&fit=crop", "Yemek"),
)

DEMO_BUSINESSES: list[dict[str, Any]] = [
    {
        "name": "Köşe Pizza",
        "slug": "kose-pizza-besiktas",
        "description": (
            "25 yıldır aynı lezzet ile hizmet veren aile işletmesi. Özel hamur ve doğal "
            "malzemelerle hazırlanan pizzalar."
        ),
        "category": "Restoran",
        "subcategory": "Pizza",
        "city": "İstanbul",
        "district": "Beşiktaş",
        "neighborhood": "Levent",
        "address": "Barbaros Bulvarı No:45 Beşiktaş/İstanbul",
        "lat": 41.0782,
        "lng": 29.0103,
        "phone": "+90 212 234 12 34",
        "website": "https://kosepizza.com",
        "email": "info@kosepizza.com",
        "verified": True,
        "is_premium": False,
        "avg_rating": 4.2,
        "total_reviews": 128,
        "total_check_ins": 45,
        "health_score": 8.5,
        "hygiene_score": 9.0,
        "service_score": 8.2,
        "value_score": 7.8,
        "trend_score": 8.8,
        "covid_safety": True,
        "price_range": "MODERATE",
        "keywords": ["pizza", "sucuk", "italyan", "aile"],
        "ai_summary": "Müşteriler lezzetini ve hızlı servisini övüyor.",
        "amenities": ["WIFI", "ACCEPTS_CARDS", "DELIVERY", "TAKEOUT"],
    },
    {
        "name": "Starbucks Zorlu Center",
        "slug": "starbucks-zorlu-besiktas",
        "description": (
            "Dünyaca ünlü kahve zincirinin Zorlu Center şubesi. Premium kahve deneyimi ve "
            "çalışma dostu ortam."
        ),
        "category": "Kafe",
        "subcategory": "Kahve",
        "city": "İstanbul",
        "district": "Beşiktaş",
        "neighborhood": "Zorlu Center",
        "address": "Zorlu Center AVM, Levazım Mahallesi",
        "lat": 41.0669,
        "lng": 29.0170,
        "phone": "+90 212 234 12 35",
        "website": "https://starbucks.com.tr",
        "verified": True,
        "is_premium": True,
        "avg_rating": 4.0,
        "total_reviews": 89,
        "total_check_ins": 156,
        "health_score": 7.8,
        "hygiene_score": 8.5,
        "service_score": 7.5,
        "value_score": 6.8,
        "trend_score": 7.2,
        "covid_safety": True,
        "price_range": "EXPENSIVE",
        "keywords": ["kahve", "latte", "çalışma", "wifi"],
        "ai_summary": "Kaliteli kahve ve çalışma ortamı sunuyor. Fiyatlar yüksek.",
        "amenities": ["WIFI", "ACCEPTS_CARDS", "WHEELCHAIR_ACCESSIBLE", "AIR_CONDITIONING"],
    },
    {
        "name": "Berber Ali",
        "slug": "berber-ali-besiktas",
        "description": (
            "Geleneksel berberlik sanatını modern tekniklerle birleştiren deneyimli ustalar. "
            "20 yıllık tecrübe."
        ),
        "category": "Güzellik & Bakım",
        "subcategory": "Erkek Berber",
        "city": "İstanbul",
        "district": "Beşiktaş",
        "neighborhood": "Çarşı",
        "address": "Beşiktaş Çarşı, Yıldız Caddesi No:12",
        "lat": 41.0430,
        "lng": 29.0070,
        "phone": "+90 212 234 12 36",
        "verified": True,
        "is_premium": False,
        "avg_rating": 4.7,
        "total_reviews": 67,
        "total_check_ins": 234,
        "health_score": 9.2,
        "hygiene_score": 9.5,
        "service_score": 9.0,
        "value_score": 8.5,
        "trend_score": 8.9,
        "covid_safety": True,
        "price_range": "BUDGET",
        "keywords": ["berber", "tıraş", "saç", "sakal"],
        "ai_summary": "Usta ellerde kaliteli berberlik hizmeti. Hijyen çok övülüyor.",
        "amenities": ["ACCEPTS_CARDS", "AIR_CONDITIONING"],
    },
    {
        "name": "Cafe Nero Ankara",
        "slug": "cafe-nero-kizilay-ankara",
        "description": (
            "İtalyan tarzı kahve kültürü ve özel blend kahveler. Ankara'nın kalbinde keyifli "
            "bir mola."
        ),
        "category": "Kafe",
        "subcategory": "Kahve",
        "city": "Ankara",
        "district": "Çankaya",
        "neighborhood": "Kızılay",
        "address": "Kızılay Meydanı No:8 Çankaya/Ankara",
        "lat": 39.9208,
        "lng": 32.8541,
        "phone": "+90 312 456 78 90",
        "website": "https://caffenero.com.tr",
        "verified": True,
        "is_premium": True,
        "avg_rating": 4.1,
        "total_reviews": 156,
        "total_check_ins": 89,
        "health_score": 8.0,
        "hygiene_score": 8.2,
        "service_score": 7.8,
        "value_score": 7.5,
        "trend_score": 8.1,
        "covid_safety": True,
        "price_range": "MODERATE",
        "keywords": ["kahve", "espresso", "öğrenci"],
        "ai_summary": "Kaliteli kahve ve merkezi konum.",
        "amenities": ["WIFI", "OUTDOOR_SEATING", "ACCEPTS_CARDS"],
    },
    {
        "name": "Deniz Restaurant",
        "slug": "deniz-restaurant-konak-izmir",
        "description": (
            "Ege'nin en taze deniz ürünleri ve geleneksel İzmir lezzetleri. Kordon manzaralı "
            "yemek deneyimi."
        ),
        "category": "Restoran",
        "subcategory": "Deniz Ürünleri",
        "city": "İzmir",
        "district": "Konak",
        "neighborhood": "Kordon",
        "address": "Kordon Boyu, Atatürk Caddesi No:156",
        "lat": 38.4192,
        "lng": 27.1287,
        "phone": "+90 232 123 45 67",
        "verified": True,
        "is_premium": False,
        "avg_rating": 4.5,
        "total_reviews": 203,
        "total_check_ins": 78,
        "health_score": 8.8,
        "hygiene_score": 9.1,
        "service_score": 8.7,
        "value_score": 8.2,
        "trend_score": 9.0,
        "covid_safety": True,
        "price_range": "EXPENSIVE",
        "keywords": ["balık", "meze", "deniz ürünleri", "manzara"],
        "ai_summary": "Taze balık ve meze çeşitleri mükemmel.",
        "amenities": ["PARKING", "OUTDOOR_SEATING", "ACCEPTS_CARDS", "RESERVATIONS", "ALCOHOL"],
    },
]


def _hours_for(category: str, day: str) -> dict[str, Any]:
    cafe = category == "Kafe"
    return {
        "day": day,
        "open_time": "07:00" if cafe else "11:00",
        "close_time": "22:00" if cafe else "23:00",
        "is_closed": day == "SUNDAY" and category == "Güzellik & Bakım",
    }


async def seed_demo_data(session: AsyncSession) -> int:
    """Insert the demo businesses when the table is empty; returns rows inserted."""
    existing = await session.scalar(select(func.count(BusinessRecord.id)))
    if existing:
        return 0

    for index, entry in enumerate(DEMO_BUSINESSES):
        payload = {k: v for k, v in entry.items() if k != "amenities"}
        business = BusinessRecord(**payload)
        session.add(business)
        await session.flush()
        for day in WEEKDAYS:
            session.add(WorkingHoursRecord(business_id=business.id, **_hours_for(entry["category"], day)))
        for amenity in entry["amenities"]:
            session.add(BusinessAmenityRecord(business_id=business.id, amenity=amenity))
        if index < 3:
            for position, (url, caption) in enumerate(DEMO_IMAGES):
                session.add(
                    BusinessImageRecord(
                        business_id=business.id,
                        url=url,
                        caption=caption,
                        position=position,
                        ai_tags=["interior", "restaurant", "food"],
                    )
                )
    await session.commit()
    logger.info("Seeded %d demo businesses", len(DEMO_BUSINESSES))
    return len(DEMO_BUSINESSES)


__all__ = ["DEMO_BUSINESSES", "seed_demo_data"]
