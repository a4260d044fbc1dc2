import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from assessment_hub.models import Question


@dataclass
class ScoreSheet:
    correct: int
    total: int
    percentage: int
    detailed_results: List[Dict[str, Any]] = field(default_factory=list)

    def passed(self, passing_score: int) -> bool:
        return is_passing(self.percentage, passing_score)


def percentage_of(correct: int, total: int) -> int:
    """Percentage of correct answers, rounded half up; 0 for an empty test."""
    if total <= 0:
        return 0
    # floor(100 * correct / total + 1/2) in integer arithmetic
    return (200 * correct + total) // (2 * total)


def is_passing(percentage: int, passing_score: int) -> bool:
    return percentage >= passing_score


def time_spent_minutes(duration: int, seconds_remaining: int) -> int:
    """Whole minutes used out of ``duration``, clamped to ``[0, duration]``."""
    used_seconds = duration * 60 - seconds_remaining
    minutes = math.ceil(used_seconds / 60)
    return max(0, min(duration, minutes))


def answer_for(answers: Mapping[Any, Any], index: int) -> Optional[str]:
    """Look up an answer by question index; keys may be ints or JSON strings."""
    if str(index) in answers:
        return answers[str(index)]
    return answers.get(index)


def score_answers(questions: Sequence[Question], answers: Mapping[Any, Any]) -> ScoreSheet:
    """Score answers against each question's correct answer by strict equality."""
    correct = 0
    detailed = []
    for index, question in enumerate(questions):
        user_answer = answer_for(answers, index)
        is_correct = user_answer is not None and user_answer == question.correct_answer
        if is_correct:
            correct += 1
        detailed.append(
            {
                "questionId": question.id,
                "userAnswer": user_answer,
                "correctAnswer": question.correct_answer,
                "isCorrect": is_correct,
            }
        )
    total = len(questions)
    return ScoreSheet(
        correct=correct,
        total=total,
        percentage=percentage_of(correct, total),
        detailed_results=detailed,
    )
