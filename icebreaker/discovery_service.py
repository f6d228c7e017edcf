"""Discovery session: runs the pipeline and publishes its state.

One ``DiscoveryService`` exists per signed-in session. It lives on a single
asyncio event loop; every snapshot is published from that loop, while store
I/O and scoring run in worker threads. Refresh triggers (explicit requests,
location changes, live store updates and the periodic timer) all pass
through the same gate so at most one pipeline run is in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from icebreaker.collaborators import LocationProvider, SessionProvider
from icebreaker.config import Config, config
from icebreaker.graphs.discovery import create_discovery_graph, initial_state
from icebreaker.models import Coordinate, DiscoverySnapshot, DiscoveryStatus, utc_now
from icebreaker.tools.firestore_tools import StoreSubscription
from icebreaker.utils.errors import DiscoveryError, NotAuthenticatedError, RetrievalFailedError
from icebreaker.utils.geo import bounding_box, haversine_meters
from icebreaker.utils.logging_config import logger

Observer = Callable[[DiscoverySnapshot], None]


def _moved_meters(a: Coordinate, b: Coordinate) -> float:
    return haversine_meters(a.latitude, a.longitude, b.latitude, b.longitude)


class DiscoveryService:
    """Owns the idle/loading/success/error state machine for one subject."""

    def __init__(
        self,
        store,
        session: SessionProvider,
        location: LocationProvider | None = None,
        settings: Config = config,
    ):
        self._store = store
        self._session = session
        self._location = location
        self._settings = settings
        self._graph = create_discovery_graph(store, settings)

        self._snapshot = DiscoverySnapshot()
        self._observers: list[Observer] = []

        self._running = False
        self._pending = False
        self._generation = 0
        self._started = False
        # Set by clear(); background refreshes wait for the next request.
        self._paused = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._debounce_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None
        self._remove_location_listener: Callable[[], None] | None = None
        self._last_location: Coordinate | None = None

        self._subscription: StoreSubscription | None = None
        self._watched_coordinate: Coordinate | None = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def snapshot(self) -> DiscoverySnapshot:
        return self._snapshot

    @property
    def matches(self):
        return self._snapshot.matches

    @property
    def is_loading(self) -> bool:
        return self._snapshot.is_loading

    @property
    def error(self) -> str | None:
        return self._snapshot.error

    @property
    def started(self) -> bool:
        return self._started

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer. It is called with the current snapshot
        right away and with every snapshot published afterwards."""

        self._observers.append(observer)
        self._notify(observer, self._snapshot)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, observer: Observer, snapshot: DiscoverySnapshot) -> None:
        try:
            observer(snapshot)
        except Exception:
            logger.exception("Discovery observer failed")

    def _publish(self, **changes) -> None:
        self._snapshot = self._snapshot.model_copy(
            update={**changes, "updated_at": utc_now()}
        )
        for observer in list(self._observers):
            self._notify(observer, self._snapshot)

    # ------------------------------------------------------------------
    # Pipeline runs
    # ------------------------------------------------------------------
    async def request_discovery(self, subject_id: str | None = None) -> DiscoverySnapshot:
        """Run discovery now, or queue one more run if one is in flight."""

        self._paused = False
        if self._running:
            self._pending = True
            logger.debug("Discovery already running; queued one more run")
            return self._snapshot

        self._running = True
        try:
            while True:
                self._pending = False
                await self._run_once(subject_id)
                if not self._pending:
                    break
                logger.debug("Running queued discovery refresh")
        finally:
            self._running = False

        return self._snapshot

    async def _run_once(self, subject_id: str | None) -> None:
        generation = self._generation

        try:
            subject_id = subject_id or self._session.current_user_id()
        except NotAuthenticatedError as exc:
            logger.warning("Discovery requested without a session")
            self._publish(
                status=DiscoveryStatus.ERROR,
                is_loading=False,
                error=str(exc),
                error_code=exc.code,
            )
            return

        # No early exit without a live coordinate: the stored profile location
        # is the fallback, so the subject document has to be fetched first.
        previous_status = self._snapshot.status
        self._publish(
            status=DiscoveryStatus.LOADING,
            is_loading=True,
            error=None,
            error_code=None,
        )

        state = initial_state(
            subject_id,
            radius_km=self._settings.DISCOVERY_RADIUS_KM,
            live_coordinate=self._location.current_coordinate() if self._location else None,
        )

        try:
            result = await asyncio.to_thread(self._graph.invoke, state)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._publish(status=previous_status, is_loading=False)
            raise
        except Exception as exc:
            logger.exception("Discovery pipeline failed for %s", subject_id)
            result = {
                "error": f"Discovery failed: {exc}",
                "error_code": DiscoveryError.code,
            }

        if generation != self._generation:
            logger.info("Discarding discovery result for %s after clear()", subject_id)
            return

        if result.get("error"):
            # Keep the last good matches on screen next to the error.
            self._publish(
                status=DiscoveryStatus.ERROR,
                is_loading=False,
                error=result["error"],
                error_code=result.get("error_code"),
            )
            return

        self._publish(
            status=DiscoveryStatus.SUCCESS,
            is_loading=False,
            matches=tuple(result.get("matches", [])),
            error=None,
            error_code=None,
        )

        if self._started and result.get("coordinate") is not None:
            self._watch_nearby(result["coordinate"])

    def clear(self) -> None:
        """Return to idle and drop all results, including a run in flight.

        Periodic and live-store refreshes stay paused until the next
        discovery request.
        """

        self._generation += 1
        self._pending = False
        self._paused = True
        self._unwatch_nearby()
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

        self._publish(
            status=DiscoveryStatus.IDLE,
            matches=(),
            is_loading=False,
            error=None,
            error_code=None,
        )

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def on_location_changed(self, coordinate: Coordinate) -> None:
        """Handle a new device coordinate. Must run on the service's loop.

        Moves shorter than MIN_LOCATION_CHANGE_METERS are ignored; the rest
        are coalesced into a single run after LOCATION_DEBOUNCE_SECONDS.
        """

        if self._last_location is not None:
            moved = _moved_meters(self._last_location, coordinate)
            if moved < self._settings.MIN_LOCATION_CHANGE_METERS:
                logger.debug("Ignoring %.1fm location change", moved)
                return

        self._last_location = coordinate
        self._schedule_debounced_refresh("location change")

    def _schedule_debounced_refresh(self, reason: str) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            logger.debug("Coalescing %s into pending refresh", reason)
            return

        logger.debug("Refresh scheduled by %s", reason)
        self._debounce_task = asyncio.get_running_loop().create_task(
            self._debounced_refresh()
        )

    async def _debounced_refresh(self) -> None:
        await asyncio.sleep(self._settings.LOCATION_DEBOUNCE_SECONDS)
        # Triggers arriving from here on start a new window.
        self._debounce_task = None
        await self.request_discovery()

    async def _refresh_periodically(self) -> None:
        while True:
            await asyncio.sleep(self._settings.REFRESH_INTERVAL_SECONDS)
            if self._running or self._paused:
                logger.debug("Periodic refresh skipped")
                continue
            await self.request_discovery()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start periodic refresh and listen for location and store changes.

        Must be called from the event loop that will own this service.
        """

        if self._started:
            return

        self._loop = asyncio.get_running_loop()
        self._started = True

        if self._location is not None:
            self._remove_location_listener = self._location.add_listener(
                self._on_location_from_any_thread
            )

        self._refresh_task = self._loop.create_task(self._refresh_periodically())
        logger.info("Discovery session started")

    def stop(self) -> None:
        """Tear down timers, listeners and the live store subscription."""

        if not self._started:
            return

        self._started = False
        for task in (self._refresh_task, self._debounce_task):
            if task is not None:
                task.cancel()
        self._refresh_task = None
        self._debounce_task = None

        if self._remove_location_listener is not None:
            self._remove_location_listener()
            self._remove_location_listener = None

        self._unwatch_nearby()
        logger.info("Discovery session stopped")

    def _on_location_from_any_thread(self, coordinate: Coordinate) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.on_location_changed, coordinate)

    def _on_nearby_changed_from_any_thread(self) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._on_nearby_changed)

    def _on_nearby_changed(self) -> None:
        if self._started and not self._paused:
            self._schedule_debounced_refresh("nearby users changed")

    def _watch_nearby(self, coordinate: Coordinate) -> None:
        """Keep a live listener on the latitude band around ``coordinate``."""

        if (
            self._subscription is not None
            and self._watched_coordinate is not None
            and _moved_meters(self._watched_coordinate, coordinate)
            < self._settings.MIN_LOCATION_CHANGE_METERS
        ):
            return

        self._unwatch_nearby()
        box = bounding_box(
            coordinate.latitude, coordinate.longitude, self._settings.DISCOVERY_RADIUS_KM
        )
        initial_snapshot = True

        def on_change(documents: list[dict]) -> None:
            nonlocal initial_snapshot
            # The listener replays the current result set first.
            if initial_snapshot:
                initial_snapshot = False
                return
            self._on_nearby_changed_from_any_thread()

        try:
            self._subscription = self._store.listen_visible_users_in_latitude_band(
                box.min_lat,
                box.max_lat,
                on_change,
                limit=self._settings.MAX_CANDIDATES,
            )
            self._watched_coordinate = coordinate
        except RetrievalFailedError as exc:
            logger.warning("Live nearby updates unavailable: %s", str(exc))

    def _unwatch_nearby(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._subscription = None
        self._watched_coordinate = None
