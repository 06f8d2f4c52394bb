"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-09-28

Creates the UniTrack schema:
- users: students, lecturers and admins
- courses / course_enrollments: catalogue, attendance settings, enrollment
- attendance_records: one row per enrolled student per session
- assessments: entered scores with derived percentage
- risk_assessments: cached risk classification per (student, course)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Users ─────────────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, unique=True),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('first_name', sa.Text(), nullable=False),
        sa.Column('last_name', sa.Text(), nullable=False),
        sa.Column('role', sa.String(16), nullable=False, server_default='student'),
        sa.Column('department', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_users_role_department', 'users', ['role', 'department'])

    # ── Courses ───────────────────────────────────────────────
    op.create_table(
        'courses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_code', sa.String(32), nullable=False),
        sa.Column('course_title', sa.Text(), nullable=False),
        sa.Column('department', sa.Text(), nullable=False),
        sa.Column('semester', sa.String(16), nullable=False),
        sa.Column('academic_year', sa.String(16), nullable=False),
        sa.Column('credit_units', sa.Integer(), nullable=False),
        sa.Column('lecturer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('max_students', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('code_validity_minutes', sa.Integer(), nullable=False, server_default='15'),
        sa.Column('campus_ip_ranges', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('course_code', 'academic_year', name='uq_courses_code_year'),
    )
    op.create_index('ix_courses_lecturer_id', 'courses', ['lecturer_id'])
    op.create_index('ix_courses_department', 'courses', ['department'])

    op.create_table(
        'course_enrollments',
        sa.Column('course_id', sa.String(36),
                  sa.ForeignKey('courses.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('student_id', sa.String(36),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    )

    # ── Attendance records ────────────────────────────────────
    op.create_table(
        'attendance_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('session_date', sa.DateTime(), nullable=False),
        sa.Column('session_topic', sa.Text(), nullable=True),
        sa.Column('attendance_code', sa.String(6), nullable=False),
        sa.Column('code_generated_at', sa.DateTime(), nullable=False),
        sa.Column('code_expires_at', sa.DateTime(), nullable=False),
        sa.Column('submission_time', sa.DateTime(), nullable=True),
        sa.Column('verification_status', sa.String(20), nullable=False,
                  server_default='absent'),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('device_info', sa.Text(), nullable=True),
        sa.Column('flag_reasons', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('reviewed_by', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('review_note', sa.Text(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_attendance_course_session', 'attendance_records',
                    ['course_id', 'session_date'])
    op.create_index('ix_attendance_student_course', 'attendance_records',
                    ['student_id', 'course_id'])
    op.create_index('ix_attendance_course_ip_submitted', 'attendance_records',
                    ['course_id', 'ip_address', 'submission_time'])

    # ── Assessments ───────────────────────────────────────────
    op.create_table(
        'assessments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assessment_type', sa.String(16), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('max_score', sa.Float(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('submission_date', sa.DateTime(), nullable=False),
        sa.Column('entered_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
    )
    op.create_index('ix_assessments_course_student', 'assessments',
                    ['course_id', 'student_id'])

    # ── Risk assessments ──────────────────────────────────────
    op.create_table(
        'risk_assessments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('risk_level', sa.String(8), nullable=False),
        sa.Column('attendance_percentage', sa.Float(), nullable=False),
        sa.Column('average_score', sa.Float(), nullable=False),
        sa.Column('factors', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('calculated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('notification_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('intervention_notes', sa.Text(), nullable=True),
        sa.UniqueConstraint('student_id', 'course_id', name='uq_risk_student_course'),
    )


def downgrade() -> None:
    op.drop_table('risk_assessments')
    op.drop_index('ix_assessments_course_student', table_name='assessments')
    op.drop_table('assessments')
    op.drop_index('ix_attendance_course_ip_submitted', table_name='attendance_records')
    op.drop_index('ix_attendance_student_course', table_name='attendance_records')
    op.drop_index('ix_attendance_course_session', table_name='attendance_records')
    op.drop_table('attendance_records')
    op.drop_table('course_enrollments')
    op.drop_index('ix_courses_department', table_name='courses')
    op.drop_index('ix_courses_lecturer_id', table_name='courses')
    op.drop_table('courses')
    op.drop_index('ix_users_role_department', table_name='users')
    op.drop_table('users')
