"""Domain models for discovery: users, answers and match results.

Store documents are camelCase; attributes are snake_case. Every model is
frozen so snapshots handed to observers cannot be mutated after publication.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field, field_validator
from pydantic.alias_generators import to_camel

from icebreaker.utils.errors import DecodeFailedError
from icebreaker.utils.geo import format_distance


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _Model(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Coordinate(_Model):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class AnswerRecord(_Model):
    """A user's free-text answer to one prompt."""

    prompt_id: str
    prompt_text: str = ""
    answer: str
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def utc_created_at(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class User(_Model):
    """A discoverable user, as the subject or as a candidate.

    ``distance_from_subject`` (km) and ``is_active`` are only set on
    candidates returned by the retriever.
    """

    id: str = Field(..., min_length=1)
    display_name: str
    age: int = 0
    bio: str = ""
    interests: list[str] = Field(default_factory=list)
    location: Coordinate | None = None
    is_visible: bool = False
    last_active: datetime | None = None
    answers: list[AnswerRecord] = Field(default_factory=list)

    distance_from_subject: float | None = None
    is_active: bool = False

    @field_validator("bio", mode="before")
    @classmethod
    def none_bio_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("interests", "answers", mode="before")
    @classmethod
    def none_list_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("interests")
    @classmethod
    def collapse_interests(cls, value: list[str]) -> list[str]:
        # Order is kept so insights cite interests deterministically.
        return list(dict.fromkeys(value))

    @field_validator("last_active")
    @classmethod
    def utc_last_active(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class SharedAnswer(_Model):
    prompt_text: str
    subject_answer: str
    candidate_answer: str
    similarity: float = Field(..., ge=0.0, le=1.0)


class MatchResult(_Model):
    """A scored candidate. Derived per discovery run and never persisted."""

    user: User
    compatibility_score: float = Field(..., ge=0.0, le=1.0)
    shared_answers: list[SharedAnswer] = Field(default_factory=list)
    shared_interests: list[str] = Field(default_factory=list)
    insight: str
    distance: float = Field(..., ge=0.0)
    matched_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def match_percentage(self) -> float:
        return self.compatibility_score * 100

    @computed_field
    @property
    def distance_label(self) -> str:
        return format_distance(self.distance * 1000)

    @computed_field
    @property
    def conversation_starter(self) -> str:
        if self.shared_answers:
            return (
                f"I noticed we both answered '{self.shared_answers[0].prompt_text}' "
                "similarly. What do you think about that?"
            )
        return "Hey! I saw we have some things in common. How's your day going?"


class DiscoveryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class DiscoverySnapshot(_Model):
    """Everything an observer needs to render the discovery screen."""

    status: DiscoveryStatus = DiscoveryStatus.IDLE
    matches: tuple[MatchResult, ...] = ()
    is_loading: bool = False
    error: str | None = None
    error_code: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)


def _describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'document'}: {err['msg']}"
        for err in exc.errors()
    )


def decode_user(document: Mapping[str, Any] | None, document_id: str | None = None) -> User:
    """Validate a raw user document.

    Raises:
        DecodeFailedError: If the document is missing or fails validation.
    """

    if not isinstance(document, Mapping):
        raise DecodeFailedError(document_id or "<unknown>", "document is empty")

    payload = dict(document)
    if document_id and not payload.get("id"):
        payload["id"] = document_id

    try:
        return User.model_validate(payload)
    except ValidationError as exc:
        raise DecodeFailedError(
            str(payload.get("id") or document_id or "<unknown>"),
            _describe_validation_error(exc),
        ) from exc
