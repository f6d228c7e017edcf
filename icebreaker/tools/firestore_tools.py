"""Firestore wrappers used by the discovery pipeline.

The store object centralizes collection naming, error handling and logging
so graph nodes stay focused on orchestration logic. Raw documents are
returned as dicts; decoding happens at the model boundary.
"""

from __future__ import annotations

import os
from collections.abc import Callable

import firebase_admin
from firebase_admin import credentials, firestore

from icebreaker.config import Config, config
from icebreaker.utils.errors import RetrievalFailedError
from icebreaker.utils.logging_config import get_logger

logger = get_logger("firestore")


def create_firestore_client(settings: Config = config) -> firestore.Client:
    """Create a Firestore client, initializing Firebase on first use."""

    try:
        if not firebase_admin._apps:
            cred_path = (
                os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
                or settings.GOOGLE_APPLICATION_CREDENTIALS
            )
            if not cred_path:
                raise RuntimeError(
                    "GOOGLE_APPLICATION_CREDENTIALS is not set"
                )

            cred = credentials.Certificate(cred_path)
            firebase_admin.initialize_app(
                cred, {"projectId": settings.FIREBASE_PROJECT_ID}
            )

        return firestore.client()

    except Exception as exc:
        logger.error("Failed to initialize Firestore: %s", exc)
        raise RetrievalFailedError(str(exc), cause=exc) from exc


def _with_id(doc) -> dict:
    data = doc.to_dict() or {}
    data.setdefault("id", doc.id)
    return data


class StoreSubscription:
    """Handle for a live query listener; ``unsubscribe`` is idempotent."""

    def __init__(self, watch):
        self._watch = watch

    @property
    def active(self) -> bool:
        return self._watch is not None

    def unsubscribe(self) -> None:
        if self._watch is None:
            return
        try:
            self._watch.unsubscribe()
        except Exception as exc:
            logger.warning("Failed to close Firestore listener: %s", str(exc))
        finally:
            self._watch = None


class FirestoreUserStore:
    """Read access to the users collection.

    The client is created lazily so constructing the store never touches the
    network; tests pass a mock client directly.
    """

    def __init__(self, client: firestore.Client | None = None, settings: Config = config):
        self._client = client
        self._settings = settings

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            self._client = create_firestore_client(self._settings)
        return self._client

    def _users(self):
        return self.client.collection(self._settings.USERS_COLLECTION)

    def _latitude_band_query(self, min_lat: float, max_lat: float, limit: int):
        return (
            self._users()
            .where("isVisible", "==", True)
            .where("location.latitude", ">", min_lat)
            .where("location.latitude", "<", max_lat)
            .limit(limit)
        )

    def get_user_document(self, user_id: str) -> dict | None:
        """Fetch users/{user_id}. Returns None if it does not exist."""

        try:
            doc = self._users().document(user_id).get()
            if not doc.exists:
                return None
            return _with_id(doc)
        except Exception as exc:
            logger.error("Failed to fetch user document: %s", str(exc))
            raise RetrievalFailedError(
                f"Failed to load profile: {exc}", cause=exc
            ) from exc

    def query_visible_users_in_latitude_band(
        self, min_lat: float, max_lat: float, limit: int = 100
    ) -> list[dict]:
        """Visible users with latitude strictly inside (min_lat, max_lat).

        Firestore allows range filters on a single field only, so longitude
        and the exact radius are left to the caller.
        """

        try:
            query = self._latitude_band_query(min_lat, max_lat, limit)
            return [_with_id(doc) for doc in query.stream()]
        except Exception as exc:
            logger.error("Failed to query nearby users: %s", str(exc))
            raise RetrievalFailedError(
                f"Failed to load nearby users: {exc}", cause=exc
            ) from exc

    def listen_visible_users_in_latitude_band(
        self,
        min_lat: float,
        max_lat: float,
        on_change: Callable[[list[dict]], None],
        limit: int = 100,
    ) -> StoreSubscription:
        """Attach a snapshot listener to the latitude band query.

        ``on_change`` runs on a Firestore background thread with the full
        document list of each snapshot.
        """

        def _on_snapshot(docs, changes, read_time):
            on_change([_with_id(doc) for doc in docs])

        try:
            query = self._latitude_band_query(min_lat, max_lat, limit)
            return StoreSubscription(query.on_snapshot(_on_snapshot))
        except Exception as exc:
            logger.error("Failed to listen for nearby users: %s", str(exc))
            raise RetrievalFailedError(
                f"Failed to subscribe to nearby users: {exc}", cause=exc
            ) from exc
