"""
Learning objective model - canonical, ordered objectives of a course.
"""

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from professorprep.kernel.models.base import Base, TimestampMixin, generate_id


class LearningObjectiveRow(Base, TimestampMixin):
    """
    One learning objective. course_structure_order is the waterfall priority:
    lower values come earlier in the course.
    """

    __tablename__ = "learning_objectives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    module_id: Mapped[str] = mapped_column(String(36), nullable=False)
    course_structure_order: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("course_id", "course_structure_order", name="uq_learning_objectives_course_order"),
        Index("ix_learning_objectives_course_module", "course_id", "module_id"),
    )
