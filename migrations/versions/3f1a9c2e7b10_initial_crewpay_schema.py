"""initial schema: users, shift records, scheduled shifts, assignments

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='employee'),
        sa.Column('phone', sa.String(length=40), nullable=True),
        sa.Column('venmo_url', sa.String(length=255), nullable=True),
        sa.Column('pay_rate', sa.Numeric(10, 2), nullable=False, server_default='25.00'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('pay_rate >= 0', name='ck_users_pay_rate_non_negative'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_is_active', 'users', ['is_active'])

    op.create_table(
        'shift_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('shift_date', sa.Date(), nullable=False),
        sa.Column('shift_type', sa.String(length=20), nullable=False),
        sa.Column('time_in', sa.DateTime(), nullable=False),
        sa.Column('time_out', sa.DateTime(), nullable=False),
        sa.Column('hours_worked', sa.Numeric(6, 2), nullable=False),
        sa.Column('pay_rate', sa.Numeric(10, 2), nullable=False),
        sa.Column('pay_due', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('paid_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('time_out > time_in', name='ck_shift_records_time_order'),
        sa.CheckConstraint('hours_worked > 0', name='ck_shift_records_hours_positive'),
        sa.CheckConstraint('pay_due IS NULL OR pay_due >= 0', name='ck_shift_records_pay_non_negative'),
        sa.CheckConstraint(
            '(is_paid AND paid_at IS NOT NULL AND paid_by IS NOT NULL) OR '
            '(NOT is_paid AND paid_at IS NULL AND paid_by IS NULL)',
            name='ck_shift_records_paid_fields',
        ),
    )
    op.create_index('ix_shift_records_employee_id', 'shift_records', ['employee_id'])
    op.create_index('ix_shift_records_shift_date', 'shift_records', ['shift_date'])
    op.create_index('ix_shift_records_is_paid', 'shift_records', ['is_paid'])
    op.create_index('ix_shift_records_emp_date', 'shift_records', ['employee_id', 'shift_date'])

    op.create_table(
        'scheduled_shifts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('location_name', sa.String(length=200), nullable=True),
        sa.Column('address', sa.String(length=300), nullable=True),
        sa.Column('job_type', sa.String(length=20), nullable=False, server_default='other'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('end_time IS NULL OR end_time > start_time', name='ck_scheduled_shifts_window'),
    )
    op.create_index('ix_scheduled_shifts_start_time', 'scheduled_shifts', ['start_time'])
    op.create_index('ix_scheduled_shifts_end_time', 'scheduled_shifts', ['end_time'])

    op.create_table(
        'shift_assignments',
        sa.Column('scheduled_shift_id', sa.Integer(),
                  sa.ForeignKey('scheduled_shifts.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('assigned_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_shift_assignments_employee_id', 'shift_assignments', ['employee_id'])


def downgrade() -> None:
    op.drop_index('ix_shift_assignments_employee_id', table_name='shift_assignments')
    op.drop_table('shift_assignments')
    op.drop_index('ix_scheduled_shifts_end_time', table_name='scheduled_shifts')
    op.drop_index('ix_scheduled_shifts_start_time', table_name='scheduled_shifts')
    op.drop_table('scheduled_shifts')
    op.drop_index('ix_shift_records_emp_date', table_name='shift_records')
    op.drop_index('ix_shift_records_is_paid', table_name='shift_records')
    op.drop_index('ix_shift_records_shift_date', table_name='shift_records')
    op.drop_index('ix_shift_records_employee_id', table_name='shift_records')
    op.drop_table('shift_records')
    op.drop_index('ix_users_is_active', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
