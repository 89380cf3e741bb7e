"""
Mastery Rubric - derives an objective's mastery level from its record.

Level rule (thresholds configurable, defaults shown):
- Mastered:    >= 3 demonstrations, >= 2 distinct formats, no recent major
               mistake, reasoning quality satisfied
- Approaching: >= 2 demonstrations, no recent major mistake
- Developing:  everything else

The level is never stored independently of the record: callers recompute it
after every change.
"""

from dataclasses import dataclass

from pydantic import BaseModel, Field, model_validator

from professorprep.config import Settings, get_settings
from professorprep.engines.mastery.types import MasteryLevel, MasteryRecord
from professorprep.logging_config import get_logger

logger = get_logger(__name__)


class MasteryInvariantError(RuntimeError):
    """A mastery record is internally inconsistent and cannot be graded."""


class MasteryThresholds(BaseModel):
    """Configurable thresholds for the mastery level rule."""

    min_demonstrations_for_mastered: int = Field(default=3, ge=1)
    min_formats_for_mastered: int = Field(default=2, ge=1)
    min_demonstrations_for_approaching: int = Field(default=2, ge=1)
    min_reasoning_quality_score: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def _approaching_below_mastered(self) -> "MasteryThresholds":
        if self.min_demonstrations_for_approaching > self.min_demonstrations_for_mastered:
            raise ValueError(
                "min_demonstrations_for_approaching cannot exceed min_demonstrations_for_mastered"
            )
        return self

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "MasteryThresholds":
        settings = settings or get_settings()
        return cls(
            min_demonstrations_for_mastered=settings.mastery_min_demonstrations_for_mastered,
            min_formats_for_mastered=settings.mastery_min_formats_for_mastered,
            min_demonstrations_for_approaching=settings.mastery_min_demonstrations_for_approaching,
            min_reasoning_quality_score=settings.mastery_min_reasoning_quality_score,
        )


def check_record_invariants(record: MasteryRecord) -> None:
    """Raise MasteryInvariantError if the record cannot have come from the tracker."""
    problems = []
    if record.demonstration_count < 0:
        problems.append(f"negative demonstration_count ({record.demonstration_count})")
    if record.correct_count < 0:
        problems.append(f"negative correct_count ({record.correct_count})")
    if record.correct_count > record.demonstration_count:
        problems.append("correct_count exceeds demonstration_count")
    if len(record.formats_seen) > record.demonstration_count:
        problems.append("more formats seen than demonstrations")
    if any(not isinstance(f, str) or not f.strip() for f in record.formats_seen):
        problems.append("blank question format tag")

    if problems:
        logger.error(
            "Malformed mastery record",
            extra={
                "student_id": record.student_id,
                "objective_id": record.objective_id,
                "problems": problems,
            },
        )
        raise MasteryInvariantError(
            f"Mastery record {record.student_id}/{record.objective_id} is malformed: "
            + "; ".join(problems)
        )


def compute_mastery_level(
    record: MasteryRecord,
    thresholds: MasteryThresholds | None = None,
) -> MasteryLevel:
    """Derive the mastery level from the record's counters and rubric blockers."""
    thresholds = thresholds or MasteryThresholds()
    check_record_invariants(record)

    if (
        record.demonstration_count >= thresholds.min_demonstrations_for_mastered
        and len(record.formats_seen) >= thresholds.min_formats_for_mastered
        and not record.has_recent_major_mistake
        and record.reasoning_quality_satisfied
    ):
        return MasteryLevel.MASTERED

    if (
        record.demonstration_count >= thresholds.min_demonstrations_for_approaching
        and not record.has_recent_major_mistake
    ):
        return MasteryLevel.APPROACHING

    return MasteryLevel.DEVELOPING


@dataclass
class MasteryFeedback:
    """Student-facing explanation of a mastery level."""
    level: MasteryLevel
    explanation: str
    recommendation: str


def describe_mastery(
    record: MasteryRecord | None,
    thresholds: MasteryThresholds | None = None,
) -> MasteryFeedback:
    """Build the explanation and next-step recommendation shown on the progress page."""
    thresholds = thresholds or MasteryThresholds()

    if record is None or record.demonstration_count == 0:
        return MasteryFeedback(
            level=MasteryLevel.DEVELOPING,
            explanation="No attempts recorded yet. Start practicing to track your progress.",
            recommendation="Take a practice test to begin demonstrating your understanding.",
        )

    level = compute_mastery_level(record, thresholds)
    n = record.demonstration_count
    formats = len(record.formats_seen)
    plural = "s" if n != 1 else ""

    if level == MasteryLevel.MASTERED:
        return MasteryFeedback(
            level=level,
            explanation=(
                f"You have demonstrated mastery with {n} demonstrations across {formats} "
                "different question formats. Your answers show consistent understanding with "
                "strong reasoning quality and no major conceptual mistakes in recent attempts."
            ),
            recommendation=(
                "Excellent work! Continue practicing other objectives or challenge yourself "
                "with more advanced topics."
            ),
        )

    if level == MasteryLevel.APPROACHING:
        if formats < thresholds.min_formats_for_mastered:
            return MasteryFeedback(
                level=level,
                explanation=(
                    f"You're making progress with {n} demonstration{plural} so far. Try "
                    "practicing with different question types to demonstrate deeper understanding."
                ),
                recommendation=(
                    "Practice with different question formats (multiple choice, short answer, "
                    "fill-in-blank) to show versatile understanding."
                ),
            )
        if not record.reasoning_quality_satisfied:
            return MasteryFeedback(
                level=level,
                explanation=(
                    f"You're making progress with {n} demonstration{plural}, but recent "
                    "answers need stronger reasoning."
                ),
                recommendation=(
                    "Explain the why behind your answers on short-answer questions, "
                    "not just the final result."
                ),
            )
        return MasteryFeedback(
            level=level,
            explanation=(
                f"You're making progress with {n} demonstration{plural} so far. Your "
                "understanding is improving but needs more consistency."
            ),
            recommendation=(
                "Keep practicing to build consistency. Aim for a few more correct answers "
                "to demonstrate mastery."
            ),
        )

    if record.has_recent_major_mistake:
        return MasteryFeedback(
            level=level,
            explanation=(
                f"You have {n} attempt{plural} on this objective, but your recent attempts "
                "show conceptual mistakes that need attention."
            ),
            recommendation=(
                "Review the course materials carefully and focus on understanding key "
                "concepts rather than memorization."
            ),
        )
    return MasteryFeedback(
        level=level,
        explanation=(
            f"You have {n} attempt{plural} on this objective but need more consistent "
            "demonstrations to show mastery."
        ),
        recommendation=(
            "Take more practice tests and use the AI tutor if you need help understanding "
            "specific topics."
        ),
    )
