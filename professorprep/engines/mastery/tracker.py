"""
Mastery Tracker - waterfall progression for multi-objective questions.

A question may exercise several learning objectives. Only one of them moves
per answer: the earliest objective (canonical course order) among the
question's targets that is not yet mastered. When every target is already
mastered the answer is not applied anywhere.

The tracker is pure. It takes the student's current records, returns updated
copies and never touches storage; persistence is MasteryService's job.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from professorprep.engines.mastery.rubric import MasteryThresholds, compute_mastery_level
from professorprep.engines.mastery.types import (
    LearningObjective,
    MasteryLevel,
    MasteryRecord,
    QuestionEvaluationResult,
)
from professorprep.logging_config import get_logger

logger = get_logger(__name__)

MistakeClassifier = Callable[[QuestionEvaluationResult], bool]


class MasteryValidationError(ValueError):
    """The evaluation references objectives or records that do not fit the course."""


def classify_major_mistake(result: QuestionEvaluationResult) -> bool:
    """Default severity rule: trust explicit grading, otherwise any wrong answer counts."""
    if result.major_mistake is not None:
        return result.major_mistake
    return not result.is_correct


class MasteryTracker:
    """Applies graded answers to per-objective mastery records."""

    def __init__(
        self,
        thresholds: Optional[MasteryThresholds] = None,
        classify_mistake: MistakeClassifier = classify_major_mistake,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.thresholds = thresholds or MasteryThresholds()
        self.classify_mistake = classify_mistake
        self.clock = clock

    def candidate_objectives(
        self,
        result: QuestionEvaluationResult,
        objectives_in_order: Iterable[LearningObjective],
    ) -> List[LearningObjective]:
        """Targeted objectives sorted by course order. Unknown IDs are rejected."""
        by_id: Dict[str, LearningObjective] = {o.id: o for o in objectives_in_order}
        unknown = sorted(oid for oid in result.target_objective_ids if oid not in by_id)
        if unknown:
            raise MasteryValidationError(
                f"Question {result.question_id} targets objectives not in this course: "
                + ", ".join(unknown)
            )
        candidates = [by_id[oid] for oid in result.target_objective_ids]
        return sorted(candidates, key=lambda o: (o.course_structure_order, o.id))

    def select_waterfall_target(
        self,
        result: QuestionEvaluationResult,
        objectives_in_order: Iterable[LearningObjective],
        current_records: Mapping[str, MasteryRecord],
    ) -> Optional[LearningObjective]:
        """
        First targeted objective that is not mastered, or None if all are.
        Levels are re-derived from the records; a stored label is not trusted.
        """
        for objective in self.candidate_objectives(result, objectives_in_order):
            record = current_records.get(objective.id)
            if record is None:
                return objective
            if compute_mastery_level(record, self.thresholds) != MasteryLevel.MASTERED:
                return objective
        return None

    def apply_evaluation(
        self,
        result: QuestionEvaluationResult,
        objectives_in_order: Iterable[LearningObjective],
        current_records: Mapping[str, MasteryRecord],
    ) -> List[MasteryRecord]:
        """
        Apply one graded answer.

        Args:
            result: Graded answer for the student
            objectives_in_order: All objectives of the course (any order)
            current_records: The student's existing records keyed by objective ID

        Returns:
            The updated record for the waterfall target, or an empty list when
            there is nothing to update.

        Raises:
            MasteryValidationError: unknown objective, blank question format, or a
                record of another student
        """
        for objective_id, record in current_records.items():
            if record.student_id != result.student_id or record.objective_id != objective_id:
                raise MasteryValidationError(
                    f"Record for {record.student_id}/{record.objective_id} does not belong "
                    f"to student {result.student_id} objective {objective_id}"
                )

        question_format = result.question_format.strip()
        if not question_format:
            raise MasteryValidationError(
                f"Question {result.question_id} has a blank question_format"
            )

        target = self.select_waterfall_target(result, objectives_in_order, current_records)
        if target is None:
            if result.target_objective_ids:
                logger.debug(
                    "All targeted objectives mastered; answer not applied",
                    extra={"question_id": result.question_id, "student_id": result.student_id},
                )
            return []

        existing = current_records.get(target.id)
        record = (
            existing.model_copy(deep=True)
            if existing is not None
            else MasteryRecord(student_id=result.student_id, objective_id=target.id)
        )
        previous_level = compute_mastery_level(record, self.thresholds)

        record.demonstration_count += 1
        if result.is_correct:
            record.correct_count += 1
        record.formats_seen.add(question_format)
        record.has_recent_major_mistake = self._next_mistake_flag(
            record.has_recent_major_mistake, result
        )
        record.reasoning_quality_satisfied = self._next_reasoning_flag(
            record.reasoning_quality_satisfied, result
        )
        record.last_encountered = self.clock()
        record.mastery_level = compute_mastery_level(record, self.thresholds)

        if record.mastery_level != previous_level:
            logger.info(
                "Objective mastery level changed",
                extra={
                    "student_id": record.student_id,
                    "objective_id": record.objective_id,
                    "from_level": previous_level.value,
                    "to_level": record.mastery_level.value,
                },
            )
        return [record]

    def _next_mistake_flag(self, current: bool, result: QuestionEvaluationResult) -> bool:
        if self.classify_mistake(result):
            return True
        # Severity-aware grading clears the flag only on an explicit recovery
        if result.recovered is not None or result.major_mistake is not None:
            return current and not result.recovered
        return current and not result.is_correct

    def _next_reasoning_flag(self, current: bool, result: QuestionEvaluationResult) -> bool:
        signal = result.reasoning_quality
        if signal is None:
            return current
        if isinstance(signal, bool):
            return signal
        return signal >= self.thresholds.min_reasoning_quality_score
