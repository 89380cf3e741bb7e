"""
Kernel Layer

Persistence models for course objectives and student mastery, plus token
verification. Engines read and write mastery state only through these models.
"""

from professorprep.kernel.models import Base, LearningObjectiveRow, ObjectiveMastery

__all__ = [
    "Base",
    "LearningObjectiveRow",
    "ObjectiveMastery",
]
