"""
Kernel Data Models

SQLAlchemy models for course objectives and student mastery.
"""

from professorprep.kernel.models.base import Base, TimestampMixin, generate_id
from professorprep.kernel.models.objective import LearningObjectiveRow
from professorprep.kernel.models.mastery import ObjectiveMastery

__all__ = [
    "Base",
    "TimestampMixin",
    "generate_id",
    "LearningObjectiveRow",
    "ObjectiveMastery",
]
