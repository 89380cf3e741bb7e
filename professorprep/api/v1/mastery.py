"""
Mastery endpoints - graded answer submission, progress report, next focus,
and the professor's view of one student's progress.
"""

from typing import List

from fastapi import APIRouter

from professorprep.api.deps import CurrentUserId, Mastery, ProfessorUser
from professorprep.engines.mastery.mastery_service import ObjectiveProgress
from professorprep.engines.mastery.types import MasteryLevel, MasteryRecord, QuestionEvaluationResult
from professorprep.schemas.common import ErrorResponse
from professorprep.schemas.mastery import (
    EvaluationResultResponse,
    EvaluationSubmitRequest,
    MasteryProgressResponse,
    MasteryRecordResponse,
    NextFocusResponse,
    ObjectiveProgressResponse,
)

router = APIRouter()

# Mounted under /courses/{course_id}/students
student_router = APIRouter()


def _record_to_response(r: MasteryRecord) -> MasteryRecordResponse:
    return MasteryRecordResponse(
        objective_id=r.objective_id,
        mastery_level=r.mastery_level.value,
        demonstration_count=r.demonstration_count,
        correct_count=r.correct_count,
        formats_seen=sorted(r.formats_seen),
        has_recent_major_mistake=r.has_recent_major_mistake,
        reasoning_quality_satisfied=r.reasoning_quality_satisfied,
        last_encountered=r.last_encountered,
    )


def _progress_to_response(p: ObjectiveProgress) -> ObjectiveProgressResponse:
    record = p.record
    return ObjectiveProgressResponse(
        objective_id=p.objective.id,
        module_id=p.objective.module_id,
        course_structure_order=p.objective.course_structure_order,
        objective_text=p.objective.text,
        mastery_level=p.mastery_level.value,
        demonstration_count=record.demonstration_count if record else 0,
        correct_count=record.correct_count if record else 0,
        mastery_percentage=p.mastery_percentage,
        formats_seen=sorted(record.formats_seen) if record else [],
        last_encountered=record.last_encountered if record else None,
        explanation=p.feedback.explanation,
        recommendation=p.feedback.recommendation,
    )


def _course_progress_response(
    course_id: str, student_id: str, progress: List[ObjectiveProgress]
) -> MasteryProgressResponse:
    mastered = sum(1 for p in progress if p.mastery_level == MasteryLevel.MASTERED)
    return MasteryProgressResponse(
        course_id=course_id,
        student_id=student_id,
        mastered_count=mastered,
        total_objectives=len(progress),
        mastery_percentage=round(mastered / len(progress) * 100) if progress else 0,
        objectives=[_progress_to_response(p) for p in progress],
    )


@router.post(
    "/evaluations",
    response_model=EvaluationResultResponse,
    responses={422: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def submit_evaluation(
    course_id: str,
    body: EvaluationSubmitRequest,
    user_id: CurrentUserId,
    service: Mastery,
):
    """Apply a graded answer of the current student to the waterfall target objective."""
    result = QuestionEvaluationResult(
        question_id=body.question_id,
        student_id=user_id,
        target_objective_ids=set(body.target_objective_ids),
        is_correct=body.is_correct,
        question_format=body.question_format,
        reasoning_quality=body.reasoning_quality,
        major_mistake=body.major_mistake,
        recovered=body.recovered,
    )
    updated = await service.record_evaluation(course_id, result, commit=True)
    return EvaluationResultResponse(
        question_id=body.question_id,
        updated=[_record_to_response(r) for r in updated],
    )


@router.get("", response_model=MasteryProgressResponse)
async def get_mastery_progress(course_id: str, user_id: CurrentUserId, service: Mastery):
    """Current student's mastery of every objective in the course."""
    progress = await service.get_progress(user_id, course_id)
    return _course_progress_response(course_id, user_id, progress)


@router.get("/next", response_model=NextFocusResponse)
async def get_next_focus(course_id: str, user_id: CurrentUserId, service: Mastery):
    """Earliest objective the current student has not mastered yet."""
    focus = await service.next_focus(user_id, course_id)
    return NextFocusResponse(
        course_id=course_id,
        objective=_progress_to_response(focus) if focus else None,
    )


@student_router.get(
    "/{student_id}/mastery",
    response_model=MasteryProgressResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_student_mastery_progress(
    course_id: str,
    student_id: str,
    _: ProfessorUser,
    service: Mastery,
):
    """A student's mastery of every objective in the course (professors only)."""
    progress = await service.get_progress(student_id, course_id)
    return _course_progress_response(course_id, student_id, progress)
