"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and provides:
  - Test environment variables (set before the config module is imported)
  - An in-memory user store standing in for Firestore
  - Document builders and fast-timing settings for the discovery service
"""

import os

os.environ.setdefault("FIREBASE_PROJECT_ID", "test-project")
os.environ.setdefault("GOOGLE_APPLICATION_CREDENTIALS", "/config/test-serviceAccountKey.json")

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from icebreaker.config import Config
from icebreaker.utils.errors import RetrievalFailedError


# San Francisco, used as the default subject position
SF_LAT = 37.7749
SF_LON = -122.4194


def make_user_doc(
    user_id,
    lat=SF_LAT,
    lon=SF_LON,
    interests=None,
    answers=None,
    visible=True,
    last_active=None,
    name=None,
):
    """Build a raw users/{id} document as stored in Firestore."""
    doc = {
        "id": user_id,
        "displayName": name or user_id.title(),
        "age": 27,
        "bio": f"Hi, I'm {user_id}",
        "interests": interests or [],
        "isVisible": visible,
        "answers": [
            {
                "promptId": prompt_id,
                "promptText": f"Prompt {prompt_id}?",
                "answer": text,
                "createdAt": datetime(2026, 1, 1, tzinfo=timezone.utc),
            }
            for prompt_id, text in (answers or {}).items()
        ],
    }
    if lat is not None and lon is not None:
        doc["location"] = {"latitude": lat, "longitude": lon}
    if last_active is not None:
        doc["lastActive"] = last_active
    return doc


class FakeSubscription:
    def __init__(self, callback):
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        self.active = False


class FakeUserStore:
    """In-memory stand-in with the same query semantics as Firestore."""

    def __init__(self, documents=None):
        self.documents = {doc["id"]: doc for doc in (documents or [])}
        self.fail_queries = False
        self.fail_lookups = False
        self.query_calls = []
        self.subscriptions = []

    def add(self, doc):
        self.documents[doc["id"]] = doc

    def get_user_document(self, user_id):
        if self.fail_lookups:
            raise RetrievalFailedError("Failed to load profile: network down")
        doc = self.documents.get(user_id)
        return dict(doc) if doc is not None else None

    def query_visible_users_in_latitude_band(self, min_lat, max_lat, limit=100):
        self.query_calls.append((min_lat, max_lat, limit))
        if self.fail_queries:
            raise RetrievalFailedError("Failed to load nearby users: network down")
        matched = []
        for doc in self.documents.values():
            location = doc.get("location") or {}
            lat = location.get("latitude")
            if doc.get("isVisible") is True and lat is not None and min_lat < lat < max_lat:
                matched.append(dict(doc))
        return matched[:limit]

    def listen_visible_users_in_latitude_band(self, min_lat, max_lat, on_change, limit=100):
        subscription = FakeSubscription(on_change)
        self.subscriptions.append(subscription)
        return subscription


@pytest.fixture
def store():
    """Empty in-memory user store."""
    return FakeUserStore()


@pytest.fixture
def settings():
    """Settings with short timers so async tests finish quickly."""
    return Config(
        _env_file=None,
        FIREBASE_PROJECT_ID="test-project",
        LOCATION_DEBOUNCE_SECONDS=0.05,
        REFRESH_INTERVAL_SECONDS=0.05,
        SCORING_WORKERS=2,
    )


@pytest.fixture
def mock_firebase_app(monkeypatch):
    """
    Provide a mock Firebase app for testing.

    Use this fixture in tests that need to mock Firestore calls.
    """
    mock_app = MagicMock()
    mock_db = MagicMock()

    monkeypatch.setattr("firebase_admin._apps", {"[DEFAULT]": mock_app})
    monkeypatch.setattr("firebase_admin.initialize_app", MagicMock(return_value=mock_app))
    monkeypatch.setattr("firebase_admin.firestore.client", MagicMock(return_value=mock_db))

    return {"app": mock_app, "db": mock_db}
