"""
Pydantic schemas for objectives and mastery API.
"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class ObjectiveCreate(BaseModel):
    """One objective to register for a course."""

    module_id: str
    text: str = Field(min_length=1)
    course_structure_order: int


class ObjectiveCreateRequest(BaseModel):
    """Body for registering a batch of objectives."""

    objectives: List[ObjectiveCreate] = Field(min_length=1)


class ObjectiveResponse(BaseModel):
    """A learning objective in canonical order."""

    id: str
    course_id: str
    module_id: str
    course_structure_order: int
    text: str


class EvaluationSubmitRequest(BaseModel):
    """
    A graded answer for the current student.
    reasoning_quality: true/false, or a rubric score (0 = low quality).
    """

    question_id: str
    target_objective_ids: List[str]
    is_correct: bool
    question_format: str = Field(min_length=1)
    reasoning_quality: Optional[Union[bool, float]] = None
    major_mistake: Optional[bool] = None
    recovered: Optional[bool] = None

    @field_validator("question_format")
    @classmethod
    def _format_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("question_format must not be blank")
        return v


class MasteryRecordResponse(BaseModel):
    """Mastery state of one objective for one student."""

    objective_id: str
    mastery_level: str
    demonstration_count: int
    correct_count: int
    formats_seen: List[str]
    has_recent_major_mistake: bool
    reasoning_quality_satisfied: bool
    last_encountered: Optional[datetime] = None


class EvaluationResultResponse(BaseModel):
    """Records changed by an evaluation (empty when all targets were already mastered)."""

    question_id: str
    updated: List[MasteryRecordResponse]


class ObjectiveProgressResponse(BaseModel):
    """One objective in the student's progress report."""

    objective_id: str
    module_id: str
    course_structure_order: int
    objective_text: str
    mastery_level: str
    demonstration_count: int = 0
    correct_count: int = 0
    mastery_percentage: int = 0
    formats_seen: List[str] = []
    last_encountered: Optional[datetime] = None
    explanation: str
    recommendation: str


class MasteryProgressResponse(BaseModel):
    """Student's mastery across every objective of a course."""

    course_id: str
    student_id: str
    mastered_count: int
    total_objectives: int
    mastery_percentage: int = 0  # share of objectives mastered, 0-100
    objectives: List[ObjectiveProgressResponse]


class NextFocusResponse(BaseModel):
    """Objective the student should work on next (None when the course is mastered)."""

    course_id: str
    objective: Optional[ObjectiveProgressResponse] = None
