"""Interfaces to the session and location collaborators.

Discovery only needs to know who the subject is and where the device is.
The protocols describe that boundary; the small implementations back the
HTTP surface and tests.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol

from icebreaker.models import Coordinate
from icebreaker.utils.errors import NotAuthenticatedError
from icebreaker.utils.logging_config import logger

LocationListener = Callable[[Coordinate], None]


class SessionProvider(Protocol):
    def current_user_id(self) -> str:
        """Return the signed-in user id or raise NotAuthenticatedError."""


class LocationProvider(Protocol):
    def current_coordinate(self) -> Coordinate | None:
        """Latest device coordinate, or None until location is granted."""

    def add_listener(self, listener: LocationListener) -> Callable[[], None]:
        """Register for coordinate changes; returns an unsubscribe callable."""


class StaticSession:
    """Session bound to one user id for its whole lifetime."""

    def __init__(self, user_id: str | None):
        self.user_id = user_id

    def current_user_id(self) -> str:
        if not self.user_id:
            raise NotAuthenticatedError()
        return self.user_id


class LatestLocation:
    """Holds the most recent coordinate and fans updates out to listeners.

    ``update`` may be called from any thread; listeners run on the caller's
    thread.
    """

    def __init__(self, coordinate: Coordinate | None = None):
        self._coordinate = coordinate
        self._listeners: list[LocationListener] = []
        self._lock = threading.Lock()

    def current_coordinate(self) -> Coordinate | None:
        return self._coordinate

    def add_listener(self, listener: LocationListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def update(self, coordinate: Coordinate) -> None:
        self._coordinate = coordinate
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(coordinate)
            except Exception as exc:
                logger.warning("Location listener failed: %s", str(exc))
