"""Geo/keyword vendor matching.

``find_matches`` is a pure function over an in-memory vendor pool. It does a
linear scan with no spatial index, so its cost grows with the number of
active verified vendors.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadlink.common.enums import VendorRegistrationStatus
from leadlink.common.logging import get_logger
from leadlink.core.matching.schemas import VendorCandidate
from leadlink.db.models.vendor import Vendor

logger = get_logger("matching.geo")

EARTH_RADIUS_KM = 6371.0
DEFAULT_RADIUS_KM = 10.0
AUTOCOMPLETE_LIMIT = 10


class MatchableVendor(Protocol):
    id: object
    business_name: str
    title: str
    business_latitude: float | None
    business_longitude: float | None
    keywords: list | None


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def keyword_hit(vendor: MatchableVendor, keyword: str) -> str | None:
    """Return a description of the first field containing ``keyword``, or None."""
    needle = keyword.lower()
    for kw in vendor.keywords or []:
        if needle in str(kw).lower():
            return f'keyword "{kw}"'
    if needle in (vendor.business_name or "").lower():
        return "business name"
    if needle in (vendor.title or "").lower():
        return "title"
    return None


def find_matches(
    user_lat: float,
    user_lon: float,
    keyword: str,
    vendors: Iterable[MatchableVendor],
    radius_km: float = DEFAULT_RADIUS_KM,
) -> list[VendorCandidate]:
    keyword = keyword.strip()
    if not keyword:
        raise ValueError("keyword must not be empty")

    matches: list[VendorCandidate] = []
    for vendor in vendors:
        if vendor.business_latitude is None or vendor.business_longitude is None:
            continue

        distance = haversine_km(user_lat, user_lon, vendor.business_latitude, vendor.business_longitude)
        if distance > radius_km:
            continue

        hit = keyword_hit(vendor, keyword)
        if hit is None:
            continue

        distance_km = round(distance, 2)
        matches.append(
            VendorCandidate(
                vendor_id=vendor.id,
                distance_km=distance_km,
                match_reason=f'Matches "{keyword}" on {hit} and {distance_km}km away',
            )
        )

    logger.info(
        "Matched %d vendors for '%s' at (%.4f, %.4f) within %.1fkm",
        len(matches), keyword, user_lat, user_lon, radius_km,
    )
    return matches


async def load_matchable_vendors(db: AsyncSession) -> list[Vendor]:
    result = await db.execute(
        select(Vendor)
        .where(
            Vendor.active.is_(True),
            Vendor.registration_status == VendorRegistrationStatus.VERIFIED.value,
            Vendor.is_deleted.is_(False),
        )
        .order_by(Vendor.created_at)
    )
    return list(result.scalars().all())


async def search_vendors(
    db: AsyncSession,
    keyword: str,
    latitude: float | None = None,
    longitude: float | None = None,
    limit: int = AUTOCOMPLETE_LIMIT,
) -> list[tuple[Vendor, float | None]]:
    """Keyword autocomplete over matchable vendors, radius-filtered when coordinates are given."""
    vendors = await load_matchable_vendors(db)

    if latitude is not None and longitude is not None:
        by_id = {v.id: v for v in vendors}
        candidates = find_matches(latitude, longitude, keyword, vendors)
        return [(by_id[c.vendor_id], c.distance_km) for c in candidates[:limit]]

    keyword = keyword.strip()
    if not keyword:
        raise ValueError("keyword must not be empty")
    hits = [v for v in vendors if keyword_hit(v, keyword) is not None]
    return [(v, None) for v in hits[:limit]]
