"""
Mastery Service - loads and persists mastery state around the tracker (DB-backed).
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from professorprep.engines.mastery.rubric import (
    MasteryFeedback,
    MasteryThresholds,
    compute_mastery_level,
    describe_mastery,
)
from professorprep.engines.mastery.tracker import MasteryTracker, MasteryValidationError
from professorprep.engines.mastery.types import (
    LearningObjective,
    MasteryLevel,
    MasteryRecord,
    QuestionEvaluationResult,
)
from professorprep.kernel.models.mastery import ObjectiveMastery
from professorprep.kernel.models.objective import LearningObjectiveRow
from professorprep.logging_config import get_logger

logger = get_logger(__name__)


class KeyedAsyncLocks:
    """
    In-process asyncio locks keyed by (student_id, objective_id).

    A lock exists only while some task holds or waits for it: each key is
    reference-counted and dropped when its last user leaves.
    """

    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._users: Dict[Tuple[str, str], int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, keys: Iterable[Tuple[str, str]]) -> AsyncIterator[None]:
        # Sorted acquisition order so two multi-objective updates cannot deadlock
        ordered = sorted(set(keys))
        # Register every key before the first await so no lock is dropped under a waiter
        for key in ordered:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            self._users[key] = self._users.get(key, 0) + 1

        acquired: List[Tuple[str, str]] = []
        try:
            for key in ordered:
                await self._locks[key].acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in ordered:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]


# Module-level (single process); the database row lock covers multiple workers
_record_locks = KeyedAsyncLocks()


@dataclass
class ObjectiveProgress:
    """One objective with the student's mastery state, for progress views."""
    objective: LearningObjective
    record: Optional[MasteryRecord]
    feedback: MasteryFeedback

    @property
    def mastery_level(self) -> MasteryLevel:
        return self.feedback.level

    @property
    def mastery_percentage(self) -> int:
        if self.record is None or self.record.demonstration_count == 0:
            return 0
        return round(self.record.correct_count / self.record.demonstration_count * 100)


class MasteryService:
    """
    Database-backed mastery operations.
    Flushes but does not commit unless asked: the request's session dependency
    owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        tracker: Optional[MasteryTracker] = None,
        locks: Optional[KeyedAsyncLocks] = None,
    ):
        self.session = session
        self.tracker = tracker or MasteryTracker(MasteryThresholds.from_settings())
        self.locks = locks or _record_locks

    @property
    def thresholds(self) -> MasteryThresholds:
        return self.tracker.thresholds

    @staticmethod
    def _row_to_objective(row: LearningObjectiveRow) -> LearningObjective:
        return LearningObjective(
            id=row.id,
            course_id=row.course_id,
            module_id=row.module_id,
            course_structure_order=row.course_structure_order,
            text=row.text,
        )

    def _row_to_record(self, row: ObjectiveMastery) -> MasteryRecord:
        """Build a record from its row; the level is re-derived, not trusted."""
        record = MasteryRecord(
            student_id=row.student_id,
            objective_id=row.objective_id,
            demonstration_count=row.demonstration_count,
            correct_count=row.correct_count,
            formats_seen=set(row.formats_seen or []),
            has_recent_major_mistake=row.has_recent_major_mistake,
            reasoning_quality_satisfied=row.reasoning_quality_satisfied,
            last_encountered=row.last_encountered,
        )
        record.mastery_level = compute_mastery_level(record, self.thresholds)
        return record

    async def create_objectives(self, objectives: Sequence[LearningObjective]) -> List[LearningObjective]:
        """Register objectives. Each course_structure_order must be unique within its course."""
        by_course: Dict[str, Set[int]] = {}
        for o in objectives:
            if not o.course_id:
                raise MasteryValidationError(f"Objective {o.id} has no course_id")
            orders = by_course.setdefault(o.course_id, set())
            if o.course_structure_order in orders:
                raise MasteryValidationError(
                    f"Duplicate course_structure_order {o.course_structure_order} in request"
                )
            orders.add(o.course_structure_order)

        for course_id, orders in by_course.items():
            q = select(LearningObjectiveRow.course_structure_order).where(
                LearningObjectiveRow.course_id == course_id,
                LearningObjectiveRow.course_structure_order.in_(orders),
            )
            taken = sorted((await self.session.execute(q)).scalars().all())
            if taken:
                raise MasteryValidationError(
                    f"course_structure_order already used in course {course_id}: "
                    + ", ".join(str(t) for t in taken)
                )

        rows = [
            LearningObjectiveRow(
                id=o.id,
                course_id=o.course_id,
                module_id=o.module_id,
                course_structure_order=o.course_structure_order,
                text=o.text,
            )
            for o in objectives
        ]
        self.session.add_all(rows)
        await self.session.flush()
        logger.info("Learning objectives registered", extra={"count": len(rows)})
        return [self._row_to_objective(r) for r in rows]

    async def list_objectives(self, course_id: str) -> List[LearningObjective]:
        """All objectives of a course in canonical order."""
        q = (
            select(LearningObjectiveRow)
            .where(LearningObjectiveRow.course_id == course_id)
            .order_by(LearningObjectiveRow.course_structure_order, LearningObjectiveRow.id)
        )
        result = await self.session.execute(q)
        return [self._row_to_objective(r) for r in result.scalars().all()]

    async def _load_rows(
        self,
        student_id: str,
        objective_ids: Iterable[str],
        for_update: bool = False,
    ) -> Dict[str, ObjectiveMastery]:
        ids = list(objective_ids)
        if not ids:
            return {}
        q = select(ObjectiveMastery).where(
            ObjectiveMastery.student_id == student_id,
            ObjectiveMastery.objective_id.in_(ids),
        )
        if for_update:
            q = q.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(q)
        return {row.objective_id: row for row in result.scalars().all()}

    async def get_records(self, student_id: str, objective_ids: Iterable[str]) -> Dict[str, MasteryRecord]:
        rows = await self._load_rows(student_id, objective_ids)
        return {oid: self._row_to_record(row) for oid, row in rows.items()}

    async def record_evaluation(
        self,
        course_id: str,
        result: QuestionEvaluationResult,
        commit: bool = False,
    ) -> List[MasteryRecord]:
        """
        Apply a graded answer for its student and persist the updated record.

        Args:
            course_id: Course whose objectives the question targets
            result: Graded answer
            commit: Commit before releasing the per-objective locks. Without it
                the caller must commit, and in-process serialisation only
                covers the flush.

        Returns:
            The updated records (empty when every targeted objective is mastered)

        Raises:
            MasteryValidationError: a target is not an objective of this course
        """
        objectives = await self.list_objectives(course_id)
        keys = [(result.student_id, oid) for oid in result.target_objective_ids]

        async with self.locks.hold(keys):
            rows = await self._load_rows(
                result.student_id, result.target_objective_ids, for_update=True
            )
            current = {oid: self._row_to_record(row) for oid, row in rows.items()}
            updated = self.tracker.apply_evaluation(result, objectives, current)

            for record in updated:
                row = rows.get(record.objective_id)
                if row is None:
                    row = ObjectiveMastery(
                        student_id=record.student_id,
                        course_id=course_id,
                        objective_id=record.objective_id,
                    )
                    self.session.add(row)
                row.mastery_level = record.mastery_level.value
                row.demonstration_count = record.demonstration_count
                row.correct_count = record.correct_count
                row.formats_seen = sorted(record.formats_seen)
                row.has_recent_major_mistake = record.has_recent_major_mistake
                row.reasoning_quality_satisfied = record.reasoning_quality_satisfied
                row.last_encountered = record.last_encountered

            await self.session.flush()
            if commit:
                await self.session.commit()

        return updated

    async def get_progress(self, student_id: str, course_id: str) -> List[ObjectiveProgress]:
        """Every course objective in canonical order with the student's mastery state."""
        objectives = await self.list_objectives(course_id)
        records = await self.get_records(student_id, [o.id for o in objectives])
        progress = []
        for objective in objectives:
            record = records.get(objective.id)
            progress.append(
                ObjectiveProgress(
                    objective=objective,
                    record=record,
                    feedback=describe_mastery(record, self.thresholds),
                )
            )
        return progress

    async def next_focus(self, student_id: str, course_id: str) -> Optional[ObjectiveProgress]:
        """Earliest objective the student has not mastered, or None when all are mastered."""
        for item in await self.get_progress(student_id, course_id):
            if item.mastery_level != MasteryLevel.MASTERED:
                return item
        return None
