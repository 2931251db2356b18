"""Interview rubric scoring."""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

COMPETENCY_TOPICS = (
    "Job knowledge, skills and experience suited to the position",
    "Manner, personality, etiquette and appropriate dress",
    "Communication (clear and easy to understand)",
    "Quick thinking, analysis and answering questions",
    "Attitude towards self, others and the work",
    "Leadership qualities",
    "Fit with the organisation for the position",
)

CORE_VALUE_TOPICS = (
    "Good interpersonal skills, friendly and ready to serve",
    "Solves problems even beyond own responsibilities",
    "Diligence, enthusiasm and readiness to learn",
    "Careful hand-over of work to others",
    "Supports the team, listens and collaborates",
    "Admits mistakes and helps fix them",
    "Punctuality",
    "Works transparently without conflicts of interest",
)

MIN_SCORE = 1
MAX_SCORE = 5
MAX_TOTAL = (len(COMPETENCY_TOPICS) + len(CORE_VALUE_TOPICS)) * MAX_SCORE


class IncompleteRubric(ValueError):
    """Raised when a rubric row is missing or out of range."""


@dataclass(frozen=True)
class RubricScore:
    total_score: int
    max_score: int
    percentage: int


def _check_section(rows: Iterable[Mapping[str, Any]], topics: tuple, label: str) -> int:
    by_index = {}
    for row in rows:
        index = row.get("topic_index")
        if not isinstance(index, int) or not 0 <= index < len(topics):
            raise IncompleteRubric(f"Unknown {label} topic index: {index}")
        by_index[index] = row.get("score")

    missing = [topics[i] for i in range(len(topics)) if by_index.get(i) is None]
    if missing:
        raise IncompleteRubric(f"Missing {label} scores: {', '.join(missing)}")

    for index, score in by_index.items():
        if not isinstance(score, int) or isinstance(score, bool) or not MIN_SCORE <= score <= MAX_SCORE:
            raise IncompleteRubric(
                f"{label.capitalize()} score for '{topics[index]}' must be between "
                f"{MIN_SCORE} and {MAX_SCORE}"
            )
    return sum(by_index.values())


def compute_score(
    competency_scores: Iterable[Mapping[str, Any]],
    core_value_scores: Iterable[Mapping[str, Any]],
) -> RubricScore:
    """
    Total and percentage for a complete rubric.

    Raises:
        IncompleteRubric: If any topic is missing or scored outside 1-5
    """
    total = _check_section(competency_scores, COMPETENCY_TOPICS, "competency")
    total += _check_section(core_value_scores, CORE_VALUE_TOPICS, "core value")
    return RubricScore(
        total_score=total,
        max_score=MAX_TOTAL,
        percentage=round(total / MAX_TOTAL * 100),
    )
