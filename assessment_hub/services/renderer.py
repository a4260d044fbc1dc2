"""Question variants and their rendering into view-models.

Every stored ``Question`` is mapped onto exactly one variant of a closed
union; rendering dispatches over that union and rejects anything else.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from assessment_hub.models import Question

FILL_BLANK_TYPES = {"fill_blank", "fill-blank"}
SCENARIO_TYPES = {"scenario", "direct_qa", "direct-qa"}


@dataclass(frozen=True)
class McqQuestion:
    id: int
    text: str
    choices: List[str]
    difficulty: str = "medium"


@dataclass(frozen=True)
class CodingQuestion:
    id: int
    text: str
    language: str = "javascript"
    template: str = ""
    test_cases: List[Dict[str, Any]] = field(default_factory=list)
    difficulty: str = "medium"
    time_limit: Optional[int] = None


@dataclass(frozen=True)
class FillBlankQuestion:
    id: int
    text: str
    difficulty: str = "medium"


@dataclass(frozen=True)
class ScenarioQuestion:
    id: int
    text: str
    difficulty: str = "medium"


QuestionVariant = Union[McqQuestion, CodingQuestion, FillBlankQuestion, ScenarioQuestion]


def to_variant(question: Question) -> QuestionVariant:
    qtype = (question.type or "").lower()
    options = question.options

    if qtype == "coding":
        config = options if isinstance(options, dict) else {}
        return CodingQuestion(
            id=question.id,
            text=question.question,
            language=question.code_language or "javascript",
            template=config.get("template", ""),
            test_cases=list(config.get("testCases") or []),
            difficulty=question.difficulty,
            time_limit=question.time_limit,
        )
    if qtype in FILL_BLANK_TYPES:
        return FillBlankQuestion(id=question.id, text=question.question, difficulty=question.difficulty)
    if qtype in SCENARIO_TYPES:
        return ScenarioQuestion(id=question.id, text=question.question, difficulty=question.difficulty)
    if isinstance(options, list) and options:
        return McqQuestion(
            id=question.id,
            text=question.question,
            choices=[str(o) for o in options],
            difficulty=question.difficulty,
        )
    # No usable choices: answer as free text
    return FillBlankQuestion(id=question.id, text=question.question, difficulty=question.difficulty)


def option_letter(position: int) -> str:
    return chr(ord("A") + position)


def render_question(
    variant: QuestionVariant, index: int, current_answer: Optional[str] = None
) -> Dict[str, Any]:
    """Build the view-model for one served question."""
    if not isinstance(variant, (McqQuestion, CodingQuestion, FillBlankQuestion, ScenarioQuestion)):
        raise TypeError(f"Unsupported question variant: {type(variant).__name__}")

    base = {
        "index": index,
        "questionId": variant.id,
        "text": variant.text,
        "difficulty": variant.difficulty,
        "answer": current_answer,
        "answered": bool(current_answer),
    }

    if isinstance(variant, McqQuestion):
        base["kind"] = "mcq"
        base["choices"] = [
            {
                "letter": option_letter(pos),
                "value": choice,
                "selected": current_answer == choice,
            }
            for pos, choice in enumerate(variant.choices)
        ]
        return base

    if isinstance(variant, CodingQuestion):
        base["kind"] = "coding"
        base["language"] = variant.language
        base["template"] = variant.template
        base["code"] = current_answer if current_answer else variant.template
        base["testCases"] = [
            {"input": case.get("input"), "description": case.get("description", "")}
            for case in variant.test_cases
        ]
        base["timeLimit"] = variant.time_limit
        return base

    # Free-text variants
    base["kind"] = "fill_blank" if isinstance(variant, FillBlankQuestion) else "scenario"
    base["characterCount"] = len(current_answer or "")
    return base
