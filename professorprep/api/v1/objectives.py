"""
Learning objective endpoints - canonical objective list of a course.
"""

from typing import List

from fastapi import APIRouter, status

from professorprep.api.deps import CurrentUserId, Mastery
from professorprep.engines.mastery.types import LearningObjective
from professorprep.kernel.models.base import generate_id
from professorprep.schemas.mastery import ObjectiveCreateRequest, ObjectiveResponse

router = APIRouter()


def _objective_to_response(o: LearningObjective) -> ObjectiveResponse:
    return ObjectiveResponse(
        id=o.id,
        course_id=o.course_id or "",
        module_id=o.module_id,
        course_structure_order=o.course_structure_order,
        text=o.text,
    )


@router.post(
    "/courses/{course_id}/objectives",
    response_model=List[ObjectiveResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_objectives(
    course_id: str,
    body: ObjectiveCreateRequest,
    _: CurrentUserId,
    service: Mastery,
):
    """Register objectives (e.g. after AI generation has been reviewed by the professor)."""
    created = await service.create_objectives(
        [
            LearningObjective(
                id=generate_id(),
                course_id=course_id,
                module_id=item.module_id,
                course_structure_order=item.course_structure_order,
                text=item.text,
            )
            for item in body.objectives
        ]
    )
    return [_objective_to_response(o) for o in created]


@router.get("/courses/{course_id}/objectives", response_model=List[ObjectiveResponse])
async def list_objectives(course_id: str, _: CurrentUserId, service: Mastery):
    """All objectives of the course in canonical order."""
    return [_objective_to_response(o) for o in await service.list_objectives(course_id)]
