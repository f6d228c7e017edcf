"""Discovery graph: load subject, find nearby people, score and rank them."""

from __future__ import annotations

from icebreaker.config import Config, config
from icebreaker.graphs.base_graph import BaseGraph
from icebreaker.models import decode_user, utc_now
from icebreaker.state import DiscoveryState
from icebreaker.tools.ranking_tools import aggregate_matches
from icebreaker.tools.retrieval_tools import find_nearby_candidates
from icebreaker.tools.scoring_tools import score_candidates
from icebreaker.utils.errors import (
    DecodeFailedError,
    DiscoveryError,
    LocationUnavailableError,
    RetrievalFailedError,
    SubjectNotFoundError,
)


def _with_state(state: DiscoveryState, **updates) -> DiscoveryState:
    """Return a new state dict with updates applied."""

    return {**state, **updates}


def _with_error(state: DiscoveryState, error: DiscoveryError, **updates) -> DiscoveryState:
    return _with_state(state, error=str(error), error_code=error.code, **updates)


class DiscoveryGraph(BaseGraph):
    """Linear discovery pipeline from subject lookup to ranked matches."""

    always_run = frozenset({"finalize_response"})

    def __init__(self, store, settings: Config = config):
        super().__init__()
        self.store = store
        self.settings = settings

    @property
    def state_schema(self) -> type:
        return DiscoveryState

    def nodes(self):
        return [
            ("fetch_subject", self.node_fetch_subject),
            ("resolve_location", self.node_resolve_location),
            ("query_candidates", self.node_query_candidates),
            ("score_candidates", self.node_score_candidates),
            ("rank_matches", self.node_rank_matches),
            ("finalize_response", self.node_finalize_response),
        ]

    def node_fetch_subject(self, state: DiscoveryState) -> DiscoveryState:
        """Load and decode the subject's profile."""

        subject_id = state["subject_id"]
        try:
            document = self.store.get_user_document(subject_id)
            if document is None:
                raise SubjectNotFoundError(subject_id)
            return _with_state(state, subject=decode_user(document, subject_id))
        except (RetrievalFailedError, SubjectNotFoundError, DecodeFailedError) as exc:
            self._log_node_error("fetch_subject", exc)
            return _with_error(state, exc)

    def node_resolve_location(self, state: DiscoveryState) -> DiscoveryState:
        """Pick the search center: live coordinate first, then the profile's."""

        # The profile location is the fallback, so a missing location can only
        # be detected after fetch_subject has loaded the profile.
        coordinate = state.get("live_coordinate") or state["subject"].location
        if coordinate is None:
            exc = LocationUnavailableError()
            self._log_node_error("resolve_location", exc)
            return _with_error(state, exc)

        return _with_state(state, coordinate=coordinate)

    def node_query_candidates(self, state: DiscoveryState) -> DiscoveryState:
        """Query visible users around the subject."""

        try:
            candidates = find_nearby_candidates(
                self.store,
                state["coordinate"],
                state["subject_id"],
                state.get("radius_km", self.settings.DISCOVERY_RADIUS_KM),
                limit=self.settings.MAX_CANDIDATES,
                active_window_minutes=self.settings.ACTIVE_WINDOW_MINUTES,
                now=state.get("now"),
            )
            return _with_state(state, candidates=candidates)
        except RetrievalFailedError as exc:
            self._log_node_error("query_candidates", exc)
            return _with_error(state, exc, candidates=[])

    def node_score_candidates(self, state: DiscoveryState) -> DiscoveryState:
        """Score every nearby candidate against the subject."""

        scored = score_candidates(
            state["subject"],
            state.get("candidates", []),
            self.settings,
            now=state.get("now"),
        )
        return _with_state(state, scored_matches=scored)

    def node_rank_matches(self, state: DiscoveryState) -> DiscoveryState:
        """Filter, sort and truncate the scored matches."""

        matches = aggregate_matches(
            state.get("scored_matches", []),
            min_score=self.settings.MIN_MATCH_SCORE,
            max_results=self.settings.MAX_MATCHES,
        )
        return _with_state(state, matches=matches)

    def node_finalize_response(self, state: DiscoveryState) -> DiscoveryState:
        """Attach summary metadata."""

        metadata = {
            "success": not state.get("error"),
            "error": state.get("error"),
            "total_candidates": len(state.get("candidates", [])),
            "scored_count": len(state.get("scored_matches", [])),
            "match_count": len(state.get("matches", [])),
        }
        if state.get("error"):
            return _with_state(state, response_metadata=metadata)

        self.logger.info(
            "Discovery for %s: candidates=%s matches=%s",
            state["subject_id"],
            metadata["total_candidates"],
            metadata["match_count"],
        )
        return _with_state(state, error=None, error_code=None, response_metadata=metadata)


def create_discovery_graph(store, settings: Config = config):
    """Build and compile the discovery graph for a store."""

    graph_builder = DiscoveryGraph(store, settings)
    return graph_builder.compile()


def initial_state(
    subject_id: str,
    *,
    radius_km: float,
    live_coordinate=None,
    now=None,
) -> DiscoveryState:
    return {
        "subject_id": subject_id,
        "radius_km": radius_km,
        "live_coordinate": live_coordinate,
        "now": now or utc_now(),
        "error": None,
        "error_code": None,
    }
