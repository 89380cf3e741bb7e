"""
Mastery Engine - per-objective mastery with waterfall progression.

Levels:
- Developing
- Approaching: enough demonstrations, no recent major mistake
- Mastered: enough demonstrations across enough formats, no rubric blockers

Waterfall: a question that targets several objectives only advances the
earliest non-mastered one in course order.
"""

from professorprep.engines.mastery.types import (
    LearningObjective,
    MasteryLevel,
    MasteryRecord,
    QuestionEvaluationResult,
)
from professorprep.engines.mastery.rubric import (
    MasteryFeedback,
    MasteryInvariantError,
    MasteryThresholds,
    compute_mastery_level,
    describe_mastery,
)
from professorprep.engines.mastery.tracker import (
    MasteryTracker,
    MasteryValidationError,
    classify_major_mistake,
)
from professorprep.engines.mastery.mastery_service import MasteryService, ObjectiveProgress

__all__ = [
    "LearningObjective",
    "MasteryLevel",
    "MasteryRecord",
    "QuestionEvaluationResult",
    "MasteryFeedback",
    "MasteryInvariantError",
    "MasteryThresholds",
    "compute_mastery_level",
    "describe_mastery",
    "MasteryTracker",
    "MasteryValidationError",
    "classify_major_mistake",
    "MasteryService",
    "ObjectiveProgress",
]
