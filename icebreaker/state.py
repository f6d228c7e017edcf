"""Shared LangGraph state definitions.

Graph states are TypedDicts so the data flowing between nodes is explicit
and consistent across graph nodes.
"""

from __future__ import annotations

from datetime import datetime
from typing import TypedDict

from icebreaker.models import Coordinate, MatchResult, User

JsonDict = dict[str, object]


class DiscoveryState(TypedDict, total=False):
    """State for the discovery graph.

    Fields are optional at runtime because nodes populate them progressively.
    """

    # Identifies the subject.
    subject_id: str
    # Search radius for this run.
    radius_km: float
    # Coordinate reported by the device, if any; preferred over the profile's.
    live_coordinate: Coordinate | None
    # Reference time for activity flags and match timestamps.
    now: datetime
    # Subject profile loaded from users/{subject_id}.
    subject: User
    # Coordinate the search is centered on.
    coordinate: Coordinate
    # Visible users inside the radius, nearest first.
    candidates: list[User]
    # One scored match per candidate.
    scored_matches: list[MatchResult]
    # Ranked, filtered and truncated matches.
    matches: list[MatchResult]
    # Human-readable failure, if any node failed.
    error: str | None
    # Error taxonomy name, e.g. "RetrievalFailed".
    error_code: str | None
    # Summary counters for logging and the HTTP surface.
    response_metadata: JsonDict
