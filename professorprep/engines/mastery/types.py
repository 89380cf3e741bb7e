"""
Domain types for objective mastery tracking.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Set, Union

from pydantic import BaseModel, Field


class MasteryLevel(str, Enum):
    """Per-objective progress label, ordered developing < approaching < mastered."""
    DEVELOPING = "developing"
    APPROACHING = "approaching"
    MASTERED = "mastered"


class LearningObjective(BaseModel):
    """A learning objective in canonical course order."""

    id: str
    course_id: Optional[str] = None
    module_id: str
    course_structure_order: int
    text: str = ""


class MasteryRecord(BaseModel):
    """One student's demonstrated progress on one objective."""

    student_id: str
    objective_id: str
    mastery_level: MasteryLevel = MasteryLevel.DEVELOPING
    demonstration_count: int = 0
    correct_count: int = 0
    formats_seen: Set[str] = Field(default_factory=set)
    has_recent_major_mistake: bool = False
    reasoning_quality_satisfied: bool = True
    last_encountered: Optional[datetime] = None


class QuestionEvaluationResult(BaseModel):
    """
    A graded answer to one question, as produced by the grading step.

    reasoning_quality is either a pass/fail flag or a numeric rubric score.
    major_mistake / recovered are optional explicit severity signals; when
    grading leaves them out, correctness alone drives the major-mistake flag.
    """

    question_id: str
    student_id: str
    target_objective_ids: Set[str]
    is_correct: bool
    question_format: str
    reasoning_quality: Optional[Union[bool, float]] = None
    major_mistake: Optional[bool] = None
    recovered: Optional[bool] = None
