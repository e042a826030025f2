"""Initial PassPilot schema: schools, staff, students, hall passes

Revision ID: 5a1c9e2d7b40
Revises:
Create Date: 2026-10-19 09:12:41.318204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5a1c9e2d7b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'schools',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('plan', sa.String(length=30), nullable=False),
        sa.Column('trial_end_date', sa.DateTime(), nullable=True),
        sa.Column('is_trial_expired', sa.Boolean(), nullable=False),
        sa.Column('max_teachers', sa.Integer(), nullable=False),
        sa.Column('max_students', sa.Integer(), nullable=False),
        sa.Column('next_pass_number', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('enable_notifications', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_staff_school_id', 'staff', ['school_id'], unique=False)

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('grade', sa.String(length=20), nullable=True),
        sa.Column('student_number', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_students_school_id', 'students', ['school_id'], unique=False)

    op.create_table(
        'hall_passes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('teacher_id', sa.Integer(), nullable=True),
        sa.Column('student_name', sa.String(length=200), nullable=False),
        sa.Column('teacher_name', sa.String(length=200), nullable=True),
        sa.Column('destination', sa.String(length=50), nullable=False),
        sa.Column('custom_destination', sa.String(length=200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('elapsed_minutes', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('pass_number', sa.Integer(), nullable=False),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('returned_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['teacher_id'], ['staff.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('school_id', 'pass_number', name='uq_hall_passes_school_pass_number'),
    )
    op.create_index('ix_hall_passes_school_id', 'hall_passes', ['school_id'], unique=False)
    op.create_index('ix_hall_passes_student_id', 'hall_passes', ['student_id'], unique=False)
    op.create_index('ix_hall_passes_status', 'hall_passes', ['status'], unique=False)


def downgrade():
    op.drop_index('ix_hall_passes_status', table_name='hall_passes')
    op.drop_index('ix_hall_passes_student_id', table_name='hall_passes')
    op.drop_index('ix_hall_passes_school_id', table_name='hall_passes')
    op.drop_table('hall_passes')
    op.drop_index('ix_students_school_id', table_name='students')
    op.drop_table('students')
    op.drop_index('ix_staff_school_id', table_name='staff')
    op.drop_table('staff')
    op.drop_table('schools')
