"""Deterministic scoring utilities for matching.

Scores are plain arithmetic on token and tag sets so every number can be
explained from the two profiles alone.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from icebreaker.config import Config, config
from icebreaker.models import AnswerRecord, MatchResult, SharedAnswer, User, utc_now
from icebreaker.utils.logging_config import logger

MAX_LENGTH_BONUS = 0.2


def tokenize(text: str) -> set[str]:
    """Lowercase whitespace tokens, duplicates collapsed."""

    return set(text.lower().split())


def text_similarity(first: str, second: str) -> float:
    """Similarity of two answers to the same prompt, in [0, 1].

    Jaccard overlap of the token sets plus a bonus of 0.1 per shared token
    (capped at 0.2), so longer agreements beat a single incidental keyword.
    Two empty answers score 0.
    """

    first_tokens = tokenize(first)
    second_tokens = tokenize(second)

    union = first_tokens | second_tokens
    if not union:
        return 0.0

    common = len(first_tokens & second_tokens)
    jaccard = common / len(union)
    length_bonus = min(common / 10, MAX_LENGTH_BONUS)
    return min(jaccard + length_bonus, 1.0)


def find_shared_answers(
    subject: User, candidate: User
) -> list[tuple[AnswerRecord, AnswerRecord]]:
    """Pair up answers to the same prompt, in the subject's answer order."""

    candidate_answers: dict[str, AnswerRecord] = {}
    for answer in candidate.answers:
        candidate_answers.setdefault(answer.prompt_id, answer)

    pairs = []
    seen: set[str] = set()
    for answer in subject.answers:
        if answer.prompt_id in seen or answer.prompt_id not in candidate_answers:
            continue
        seen.add(answer.prompt_id)
        pairs.append((answer, candidate_answers[answer.prompt_id]))
    return pairs


def generate_insight(
    score: float,
    shared_interests: list[str],
    shared_answers: list[SharedAnswer],
    settings: Config = config,
) -> str:
    """One-line explanation of a match, most concrete signal first."""

    if shared_interests and shared_answers:
        return (
            f"You both love {shared_interests[0]} and answered the same "
            "questions in a similar way."
        )
    if shared_interests:
        return f"You both enjoy {' and '.join(shared_interests[:2])}."
    if shared_answers:
        return "Your answers suggest you share similar values."

    if score >= settings.STRONG_MATCH_SCORE:
        return "You two have strong potential for a great conversation!"
    if score >= settings.GOOD_MATCH_SCORE:
        return "You might enjoy talking with each other."
    return "You have different perspectives, which could make for an intriguing conversation."


def calculate_compatibility(
    subject: User,
    candidate: User,
    settings: Config = config,
    *,
    now: datetime | None = None,
) -> MatchResult:
    """Score one candidate against the subject.

    Interest overlap and answer similarity are blended by weight, but only
    the signals that exist for this pair take part in the blend. A pair
    with no common ground at all gets the floor score.
    """

    candidate_interests = set(candidate.interests)
    shared_interests = [i for i in subject.interests if i in candidate_interests]
    interest_score = len(shared_interests) / max(len(subject.interests), 1)

    shared_answers = [
        SharedAnswer(
            prompt_text=mine.prompt_text or theirs.prompt_text,
            subject_answer=mine.answer,
            candidate_answer=theirs.answer,
            similarity=text_similarity(mine.answer, theirs.answer),
        )
        for mine, theirs in find_shared_answers(subject, candidate)
    ]
    answer_score = (
        sum(a.similarity for a in shared_answers) / len(shared_answers)
        if shared_answers
        else 0.0
    )

    has_interests = bool(subject.interests or candidate.interests)
    score = settings.BASE_COMPATIBILITY

    if has_interests or subject.answers or candidate.answers:
        weighted = 0.0
        total_weight = 0.0
        if has_interests:
            weighted += settings.INTEREST_WEIGHT * interest_score
            total_weight += settings.INTEREST_WEIGHT
        if shared_answers:
            weighted += settings.ANSWER_WEIGHT * answer_score
            total_weight += settings.ANSWER_WEIGHT
        if total_weight > 0:
            score = weighted / total_weight

    if shared_interests or shared_answers:
        score += settings.SHARED_SIGNAL_BONUS
    else:
        score = settings.SCORE_FLOOR

    score = min(max(score, settings.SCORE_FLOOR), 1.0)

    return MatchResult(
        user=candidate,
        compatibility_score=score,
        shared_answers=shared_answers,
        shared_interests=shared_interests,
        insight=generate_insight(score, shared_interests, shared_answers, settings),
        distance=candidate.distance_from_subject or 0.0,
        matched_at=now or utc_now(),
    )


def score_candidates(
    subject: User,
    candidates: list[User],
    settings: Config = config,
    *,
    now: datetime | None = None,
) -> list[MatchResult]:
    """Score every candidate; results keep the candidates' order."""

    if not candidates:
        return []

    now = now or utc_now()
    workers = max(1, min(settings.SCORING_WORKERS, len(candidates)))

    with ThreadPoolExecutor(max_workers=workers) as executor:
        results = list(
            executor.map(
                lambda candidate: calculate_compatibility(
                    subject, candidate, settings, now=now
                ),
                candidates,
            )
        )

    logger.debug("score_candidates scored=%s workers=%s", len(results), workers)
    return results
