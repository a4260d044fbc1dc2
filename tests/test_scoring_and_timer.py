"""Unit tests for scoring arithmetic and the session countdown."""

from datetime import datetime, timedelta

import pytest

from assessment_hub import models
from assessment_hub.services.scoring import (
    answer_for,
    is_passing,
    percentage_of,
    score_answers,
    time_spent_minutes,
)
from assessment_hub.services.timer import Countdown, deadline_for


def _questions(n, correct="B"):
    return [
        models.Question(id=i + 1, question=f"Q{i}", options=["A", "B"], correct_answer=correct)
        for i in range(n)
    ]


class TestPercentage:
    def test_seven_of_ten_at_passing_seventy_passes(self):
        """Acceptance: 7/10 correct gives 70% and passes a 70% threshold."""
        # Given: ten questions and seven correct answers
        questions = _questions(10)
        answers = {str(i): "B" for i in range(7)}
        answers.update({str(i): "A" for i in range(7, 10)})

        # When: the answers are scored
        sheet = score_answers(questions, answers)

        # Then: score 7, percentage 70, passed
        assert sheet.correct == 7
        assert sheet.percentage == 70
        assert sheet.passed(70) is True

    def test_rounds_half_up(self):
        assert percentage_of(1, 8) == 13  # 12.5
        assert percentage_of(1, 3) == 33
        assert percentage_of(2, 3) == 67
        assert percentage_of(5, 8) == 63  # 62.5

    def test_empty_test_is_zero(self):
        assert percentage_of(0, 0) == 0

    def test_passing_is_inclusive(self):
        assert is_passing(70, 70)
        assert not is_passing(69, 70)


class TestScoreAnswers:
    def test_strict_equality_and_missing_answers(self):
        questions = _questions(3)
        sheet = score_answers(questions, {"0": "B", "1": "b"})

        assert sheet.correct == 1
        assert [d["isCorrect"] for d in sheet.detailed_results] == [True, False, False]
        assert sheet.detailed_results[2]["userAnswer"] is None
        assert sheet.detailed_results[0] == {
            "questionId": 1,
            "userAnswer": "B",
            "correctAnswer": "B",
            "isCorrect": True,
        }

    def test_answer_lookup_accepts_int_and_str_keys(self):
        assert answer_for({"2": "x"}, 2) == "x"
        assert answer_for({2: "y"}, 2) == "y"
        assert answer_for({}, 2) is None


class TestTimeSpent:
    @pytest.mark.parametrize(
        "duration,remaining,expected",
        [
            (30, 30 * 60, 0),  # nothing used
            (30, 0, 30),  # all used
            (30, 30 * 60 - 1, 1),  # one second rounds up to a minute
            (30, 20 * 60, 10),
            (30, 40 * 60, 0),  # clamp below
            (30, -600, 30),  # clamp above
        ],
    )
    def test_clamped_ceiling(self, duration, remaining, expected):
        assert time_spent_minutes(duration, remaining) == expected


class TestCountdown:
    def test_remaining_is_derived_from_deadline(self):
        start = datetime(2025, 1, 1, 9, 0, 0)
        countdown = Countdown(deadline_for(start, 30))

        assert countdown.seconds_remaining(start) == 1800
        assert countdown.seconds_remaining(start + timedelta(seconds=0.5)) == 1800
        assert countdown.seconds_remaining(start + timedelta(minutes=31)) == 0
        assert countdown.expired(start + timedelta(minutes=30))
        assert not countdown.expired(start + timedelta(minutes=29, seconds=59))

    def test_expiry_fires_exactly_once(self):
        """Acceptance: the expiry callback runs once however often the clock ticks."""
        # Given: a countdown with a recording callback
        start = datetime(2025, 1, 1, 9, 0, 0)
        calls = []
        countdown = Countdown(deadline_for(start, 1), on_expire=lambda: calls.append(1))

        # When: it ticks before, at and after the deadline, repeatedly
        fired = [
            countdown.tick(start),
            countdown.tick(start + timedelta(seconds=59)),
            countdown.tick(start + timedelta(seconds=60)),
            countdown.tick(start + timedelta(seconds=61)),
            countdown.tick(start + timedelta(minutes=10)),
        ]

        # Then: only the first tick at the deadline fired
        assert fired == [False, False, True, False, False]
        assert calls == [1]
        assert countdown.fired
