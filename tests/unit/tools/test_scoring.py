"""
Unit tests for deterministic scoring utilities.

These tests validate the compatibility arithmetic:
  1. Text similarity between two answers to the same prompt
  2. Interest/answer blending with sparse-profile degradation
  3. The score floor, ceiling and "any common ground" bonus
  4. Insight wording priority

Edge cases tested include:
  - Empty answers and empty profiles
  - Interests on one side only
  - Shared prompts with completely different answers
"""

import pytest

from icebreaker.models import AnswerRecord, User
from icebreaker.tools.scoring_tools import (
    calculate_compatibility,
    find_shared_answers,
    generate_insight,
    score_candidates,
    text_similarity,
)


def _user(user_id="sam", interests=None, answers=None, distance=None):
    return User(
        id=user_id,
        display_name=user_id.title(),
        interests=interests or [],
        answers=[
            AnswerRecord(prompt_id=pid, prompt_text=f"Prompt {pid}?", answer=text)
            for pid, text in (answers or {}).items()
        ],
        distance_from_subject=distance,
    )


class TestTextSimilarity:
    """Test answer-to-answer similarity."""

    def test_both_empty_is_zero(self):
        assert text_similarity("", "") == 0.0

    def test_whitespace_only_is_zero(self):
        assert text_similarity("   ", "\n\t") == 0.0

    def test_identical_answers_score_one(self):
        assert text_similarity("I love hiking", "I love hiking") == 1.0

    def test_case_insensitive(self):
        assert text_similarity("Coffee", "coffee") == 1.0

    def test_no_overlap_is_zero(self):
        assert text_similarity("cats", "dogs") == 0.0

    def test_jaccard_plus_length_bonus(self):
        """2 shared of 6 distinct tokens, plus 0.2 bonus for 2 shared."""
        assert text_similarity("a b c d", "a b x y") == pytest.approx(2 / 6 + 0.2)

    def test_length_bonus_capped(self):
        """Bonus grows 0.1 per shared token but never beyond 0.2."""
        first = "one two three four five six seven eight nine ten"
        second = "one two three extra1 extra2 extra3 extra4 extra5 extra6 extra7"
        assert text_similarity(first, second) == pytest.approx(3 / 17 + 0.2)

    def test_duplicate_tokens_collapse(self):
        assert text_similarity("yes yes yes", "yes") == 1.0

    @pytest.mark.parametrize(
        "first,second",
        [
            ("I like long walks", "long walks are great"),
            ("", "something"),
            ("Same same", "different words entirely"),
        ],
    )
    def test_symmetric(self, first, second):
        assert text_similarity(first, second) == text_similarity(second, first)


class TestSharedAnswers:
    """Test pairing answers by prompt id."""

    def test_pairs_only_common_prompts(self):
        subject = _user(answers={"q1": "a", "q2": "b"})
        candidate = _user("kim", answers={"q2": "c", "q3": "d"})
        pairs = find_shared_answers(subject, candidate)
        assert [(mine.prompt_id, theirs.answer) for mine, theirs in pairs] == [("q2", "c")]

    def test_keeps_subject_order(self):
        subject = _user(answers={"q3": "x", "q1": "y"})
        candidate = _user("kim", answers={"q1": "y", "q3": "x"})
        pairs = find_shared_answers(subject, candidate)
        assert [mine.prompt_id for mine, _ in pairs] == ["q3", "q1"]


class TestCompatibilityScore:
    """Test the weighted compatibility score."""

    def test_shared_interest_and_near_identical_answer(self):
        """Shared coffee plus a strongly overlapping answer scores high but below 1."""
        subject = _user(
            interests=["reading", "coffee"],
            answers={"q1": "hiking camping reading music cooking travel coffee dogs movies art"},
        )
        candidate = _user(
            "kim",
            interests=["coffee"],
            answers={"q1": "hiking camping reading music cooking travel coffee dogs movies cats"},
        )
        result = calculate_compatibility(subject, candidate)
        assert 0.35 < result.compatibility_score < 1.0
        assert result.compatibility_score == pytest.approx(0.95)
        assert "coffee" in result.insight
        assert result.shared_interests == ["coffee"]
        assert len(result.shared_answers) == 1

    def test_nothing_in_common_gets_floor(self):
        """Disjoint interests and no common prompts score exactly the floor."""
        subject = _user(interests=["chess"], answers={"q1": "quiet evenings"})
        candidate = _user("kim", interests=["surfing"], answers={"q2": "loud parties"})
        result = calculate_compatibility(subject, candidate)
        assert result.compatibility_score == 0.35
        assert "different perspectives" in result.insight

    def test_empty_subject_always_gets_floor(self):
        """A subject with no interests and no answers scores the floor against anyone."""
        subject = _user()
        for candidate in (
            _user("kim"),
            _user("lee", interests=["jazz"]),
            _user("max", answers={"q1": "hello there"}),
        ):
            result = calculate_compatibility(subject, candidate)
            assert result.compatibility_score == 0.35
            assert "different perspectives" in result.insight

    def test_interests_only(self):
        """Two of three subject interests shared: 2/3 plus the bonus."""
        subject = _user(interests=["coffee", "jazz", "art"])
        candidate = _user("kim", interests=["jazz", "coffee"])
        result = calculate_compatibility(subject, candidate)
        assert result.compatibility_score == pytest.approx(2 / 3 + 0.1)
        assert result.insight == "You both enjoy coffee and jazz."

    def test_interest_score_uses_subject_count(self):
        """One of four subject interests shared lands exactly on the floor."""
        subject = _user(interests=["a", "b", "c", "d"])
        candidate = _user("kim", interests=["a"])
        result = calculate_compatibility(subject, candidate)
        assert result.compatibility_score == pytest.approx(0.35)

    def test_answers_only_capped_at_one(self):
        """Identical answers with no interests on either side hit the ceiling."""
        subject = _user(answers={"q1": "sunrise swims"})
        candidate = _user("kim", answers={"q1": "sunrise swims"})
        result = calculate_compatibility(subject, candidate)
        assert result.compatibility_score == 1.0
        assert "similar values" in result.insight

    def test_shared_prompt_with_different_answers(self):
        """A shared prompt counts as common ground even when answers differ."""
        subject = _user(answers={"q1": "yes"})
        candidate = _user("kim", answers={"q1": "no"})
        result = calculate_compatibility(subject, candidate)
        assert result.compatibility_score == 0.35
        assert result.shared_answers[0].similarity == 0.0

    def test_overridden_constants(self, settings):
        """Floor and bonus come from configuration."""
        tuned = settings.model_copy(update={"SCORE_FLOOR": 0.2, "SHARED_SIGNAL_BONUS": 0.0})
        subject = _user(interests=["a", "b", "c", "d"])
        candidate = _user("kim", interests=["a"])
        result = calculate_compatibility(subject, candidate, tuned)
        assert result.compatibility_score == pytest.approx(0.25)

    def test_distance_carried_from_candidate(self):
        result = calculate_compatibility(_user(), _user("kim", distance=3.2))
        assert result.distance == pytest.approx(3.2)
        assert result.user.id == "kim"

    @pytest.mark.parametrize(
        "subject_interests,candidate_interests,subject_answers,candidate_answers",
        [
            ([], [], {}, {}),
            (["a"], ["a"], {"q": "x y"}, {"q": "x y"}),
            (["a", "b"], ["c"], {"q": "x"}, {"r": "y"}),
            (["a"] * 5, ["a"], {"q": "w " * 30}, {"q": "w"}),
        ],
    )
    def test_score_always_between_floor_and_one(
        self, subject_interests, candidate_interests, subject_answers, candidate_answers
    ):
        result = calculate_compatibility(
            _user(interests=subject_interests, answers=subject_answers),
            _user("kim", interests=candidate_interests, answers=candidate_answers),
        )
        assert 0.35 <= result.compatibility_score <= 1.0


class TestInsight:
    """Test insight wording priority."""

    def test_both_signals_cite_first_interest(self):
        insight = generate_insight(0.9, ["coffee", "jazz"], [object()])
        assert "coffee" in insight
        assert "jazz" not in insight

    def test_single_shared_interest(self):
        assert generate_insight(0.5, ["jazz"], []) == "You both enjoy jazz."

    def test_at_most_two_interests_cited(self):
        insight = generate_insight(0.5, ["a", "b", "c"], [])
        assert insight == "You both enjoy a and b."

    def test_bands_without_common_ground(self):
        assert "strong potential" in generate_insight(0.75, [], [])
        assert "might enjoy talking" in generate_insight(0.6, [], [])
        assert "different perspectives" in generate_insight(0.4, [], [])


class TestScoreCandidates:
    """Test batch scoring across worker threads."""

    def test_results_keep_candidate_order(self, settings):
        subject = _user(interests=["jazz"])
        candidates = [_user(f"c{i}", interests=["jazz"] if i % 2 else []) for i in range(7)]
        results = score_candidates(subject, candidates, settings)
        assert [r.user.id for r in results] == [c.id for c in candidates]

    def test_empty_candidates(self, settings):
        assert score_candidates(_user(), [], settings) == []
