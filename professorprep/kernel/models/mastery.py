"""
Mastery models - per-student, per-objective mastery records.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from professorprep.kernel.models.base import Base, TimestampMixin, generate_id


class ObjectiveMastery(Base, TimestampMixin):
    """
    Mastery state of one student on one objective.
    Created on the first applied attempt and never deleted.
    mastery_level is a cached copy of the rubric result for queries and reporting.
    """

    __tablename__ = "objective_mastery"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    objective_id: Mapped[str] = mapped_column(
        ForeignKey("learning_objectives.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    mastery_level: Mapped[str] = mapped_column(String(20), nullable=False, default="developing")
    demonstration_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    formats_seen: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    has_recent_major_mistake: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reasoning_quality_satisfied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_encountered: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("student_id", "objective_id", name="uq_objective_mastery_student_objective"),
    )
