"""Nearby candidate retrieval: latitude-band query plus exact filtering."""

from __future__ import annotations

from datetime import datetime, timedelta

from icebreaker.models import Coordinate, User, decode_user, utc_now
from icebreaker.utils.errors import DecodeFailedError
from icebreaker.utils.geo import bounding_box, haversine_km
from icebreaker.utils.logging_config import get_logger

logger = get_logger("retrieval")


def is_recently_active(user: User, now: datetime, window: timedelta) -> bool:
    if user.last_active is None:
        return False
    return now - user.last_active <= window


def find_nearby_candidates(
    store,
    center: Coordinate,
    subject_id: str,
    radius_km: float,
    *,
    limit: int = 100,
    active_window_minutes: int = 5,
    now: datetime | None = None,
) -> list[User]:
    """Return visible users within ``radius_km`` of ``center``, nearest first.

    The store only filters on latitude. Longitude and the great-circle
    radius are enforced here, cheapest check first. The subject is never
    returned. Malformed documents are skipped.

    Raises:
        RetrievalFailedError: If the store query fails.
    """

    now = now or utc_now()
    window = timedelta(minutes=active_window_minutes)
    box = bounding_box(center.latitude, center.longitude, radius_km)

    documents = store.query_visible_users_in_latitude_band(
        box.min_lat, box.max_lat, limit=limit
    )

    candidates: list[User] = []
    skipped = 0
    for document in documents:
        try:
            user = decode_user(document)
        except DecodeFailedError as exc:
            skipped += 1
            logger.warning("Skipping candidate: %s", str(exc))
            continue

        if user.id == subject_id or user.location is None:
            continue

        if not box.contains_longitude(user.location.longitude):
            continue

        distance = haversine_km(
            center.latitude,
            center.longitude,
            user.location.latitude,
            user.location.longitude,
        )
        if distance > radius_km:
            continue

        candidates.append(
            user.model_copy(
                update={
                    "distance_from_subject": distance,
                    "is_active": is_recently_active(user, now, window),
                }
            )
        )

    candidates.sort(key=lambda c: c.distance_from_subject)

    logger.debug(
        "find_nearby_candidates fetched=%s kept=%s skipped=%s",
        len(documents),
        len(candidates),
        skipped,
    )
    return candidates
