"""Objective and mastery schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Canonical course objectives
    op.create_table(
        'learning_objectives',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36), nullable=False, index=True),
        sa.Column('module_id', sa.String(36), nullable=False),
        sa.Column('course_structure_order', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('course_id', 'course_structure_order', name='uq_learning_objectives_course_order'),
    )
    op.create_index('ix_learning_objectives_course_module', 'learning_objectives', ['course_id', 'module_id'])

    # Per-student mastery of each objective
    op.create_table(
        'objective_mastery',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(64), nullable=False, index=True),
        sa.Column('course_id', sa.String(36), nullable=False, index=True),
        sa.Column(
            'objective_id',
            sa.String(36),
            sa.ForeignKey('learning_objectives.id', ondelete='CASCADE'),
            nullable=False,
            index=True,
        ),
        sa.Column('mastery_level', sa.String(20), nullable=False, server_default='developing'),
        sa.Column('demonstration_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('formats_seen', sa.JSON(), nullable=False),
        sa.Column('has_recent_major_mistake', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reasoning_quality_satisfied', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_encountered', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('student_id', 'objective_id', name='uq_objective_mastery_student_objective'),
    )


def downgrade() -> None:
    op.drop_table('objective_mastery')
    op.drop_index('ix_learning_objectives_course_module', table_name='learning_objectives')
    op.drop_table('learning_objectives')
