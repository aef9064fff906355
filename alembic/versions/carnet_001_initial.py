"""initial carnet lifecycle tables

Revision ID: carnet_001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = 'carnet_001'
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def upgrade() -> None:
    op.create_table('school_years',
        *_base_columns(),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('active_semester', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sequence')
    )
    op.create_index(op.f('ix_school_years_name'), 'school_years', ['name'])
    op.create_index(op.f('ix_school_years_active'), 'school_years', ['active'])

    op.create_table('levels',
        *_base_columns(),
        sa.Column('name', sa.String(length=20), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('is_exit_level', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('order')
    )

    op.create_table('students',
        *_base_columns(),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=True),
        sa.Column('next_level', sa.String(length=20), nullable=True),
        sa.Column('school_year_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(['school_year_id'], ['school_years.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_students_level'), 'students', ['level'])
    op.create_index(op.f('ix_students_school_year_id'), 'students', ['school_year_id'])

    # One promotion per student and school year
    op.create_table('student_promotions',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_year_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('promoted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('from_level', sa.String(length=20), nullable=True),
        sa.Column('to_level', sa.String(length=20), nullable=False),
        sa.Column('promoted_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('idempotency_key', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ),
        sa.ForeignKeyConstraint(['school_year_id'], ['school_years.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
        sa.UniqueConstraint('student_id', 'school_year_id', name='uq_student_promotion_year')
    )
    op.create_index(op.f('ix_student_promotions_student_id'), 'student_promotions', ['student_id'])

    op.create_table('classes',
        *_base_columns(),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=True),
        sa.Column('school_year_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(['school_year_id'], ['school_years.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_classes_level'), 'classes', ['level'])
    op.create_index(op.f('ix_classes_school_year_id'), 'classes', ['school_year_id'])

    op.create_table('teacher_class_links',
        *_base_columns(),
        sa.Column('teacher_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('class_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_year_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('languages', sa.JSON(), nullable=False),
        sa.Column('is_generalist', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['class_id'], ['classes.id'], ),
        sa.ForeignKeyConstraint(['school_year_id'], ['school_years.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('teacher_id', 'class_id', name='uq_teacher_class_link')
    )
    op.create_index(op.f('ix_teacher_class_links_teacher_id'), 'teacher_class_links', ['teacher_id'])
    op.create_index(op.f('ix_teacher_class_links_class_id'), 'teacher_class_links', ['class_id'])

    op.create_table('enrollments',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_year_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('class_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ),
        sa.ForeignKeyConstraint(['school_year_id'], ['school_years.id'], ),
        sa.ForeignKeyConstraint(['class_id'], ['classes.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_enrollments_student_id'), 'enrollments', ['student_id'])
    op.create_index(op.f('ix_enrollments_class_id'), 'enrollments', ['class_id'])

    op.create_table('gradebook_templates',
        *_base_columns(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('current_version', sa.Integer(), nullable=False),
        sa.Column('pages', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('template_assignments',
        *_base_columns(),
        sa.Column('template_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_version', sa.Integer(), nullable=False),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('completion_school_year_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('assigned_teacher_ids', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_completed', sa.Boolean(), nullable=False),
        sa.Column('is_completed_sem1', sa.Boolean(), nullable=False),
        sa.Column('is_completed_sem2', sa.Boolean(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['template_id'], ['gradebook_templates.id'], ),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ),
        sa.ForeignKeyConstraint(['completion_school_year_id'], ['school_years.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_id', 'student_id', 'completion_school_year_id', name='uq_template_student_year')
    )
    op.create_index(op.f('ix_template_assignments_student_id'), 'template_assignments', ['student_id'])
    op.create_index(op.f('ix_template_assignments_status'), 'template_assignments', ['status'])

    op.create_table('teacher_completions',
        *_base_columns(),
        sa.Column('template_assignment_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('teacher_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('completed_sem1', sa.Boolean(), nullable=False),
        sa.Column('completed_at_sem1', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_sem2', sa.Boolean(), nullable=False),
        sa.Column('completed_at_sem2', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_legacy', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['template_assignment_id'], ['template_assignments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_assignment_id', 'teacher_id', name='uq_completion_teacher')
    )

    # Insert-if-absent guard for signatures
    op.create_table('template_signatures',
        *_base_columns(),
        sa.Column('template_assignment_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('signer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('signature_period_id', sa.String(length=120), nullable=False),
        sa.Column('school_year_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('school_year_name', sa.String(length=50), nullable=True),
        sa.ForeignKeyConstraint(['template_assignment_id'], ['template_assignments.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_assignment_id', 'type', 'signature_period_id', 'level', name='uq_signature_period_level')
    )
    op.create_index(op.f('ix_template_signatures_template_assignment_id'), 'template_signatures', ['template_assignment_id'])
    op.create_index(op.f('ix_template_signatures_signer_id'), 'template_signatures', ['signer_id'])

    op.create_table('supervision_links',
        *_base_columns(),
        sa.Column('sub_admin_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('teacher_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sub_admin_id', 'teacher_id', name='uq_supervision_link')
    )
    op.create_index(op.f('ix_supervision_links_sub_admin_id'), 'supervision_links', ['sub_admin_id'])

    op.create_table('role_scopes',
        *_base_columns(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('levels', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    op.create_table('bypass_scopes',
        *_base_columns(),
        sa.Column('subject_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('value', sa.String(length=100), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bypass_scopes_subject_id'), 'bypass_scopes', ['subject_id'])

    op.create_table('settings',
        *_base_columns(),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key')
    )

    op.create_table('student_competency_statuses',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('competency_id', sa.String(length=100), nullable=False),
        sa.Column('en', sa.Boolean(), nullable=False),
        sa.Column('fr', sa.Boolean(), nullable=False),
        sa.Column('ar', sa.Boolean(), nullable=False),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('updated_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'competency_id', name='uq_student_competency')
    )

    op.create_table('saved_gradebooks',
        *_base_columns(),
        sa.Column('student_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('school_year_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('class_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('template_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_assignment_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('snapshot_reason', sa.String(length=20), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('template_assignment_id', 'school_year_id', 'snapshot_reason', name='uq_saved_gradebook')
    )
    op.create_index(op.f('ix_saved_gradebooks_student_id'), 'saved_gradebooks', ['student_id'])


def downgrade() -> None:
    for table in (
        'saved_gradebooks',
        'student_competency_statuses',
        'settings',
        'bypass_scopes',
        'role_scopes',
        'supervision_links',
        'template_signatures',
        'teacher_completions',
        'template_assignments',
        'gradebook_templates',
        'enrollments',
        'teacher_class_links',
        'classes',
        'student_promotions',
        'students',
        'levels',
        'school_years',
    ):
        op.drop_table(table)
