"""initial workforce schema: departments, attendance, leave, payroll

Revision ID: a1f0c3d9e2b4
Revises:
Create Date: 2025-06-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f0c3d9e2b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ---- master data ----
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'department_timings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('check_in_time', sa.String(length=16), nullable=False),
        sa.Column('check_out_time', sa.String(length=16), nullable=False),
        sa.Column('working_hours', sa.Numeric(4, 2), nullable=False),
        sa.Column('late_threshold_minutes', sa.Integer(), nullable=False),
        sa.Column('overtime_threshold_minutes', sa.Integer(), nullable=False),
        sa.Column('auto_checkout_grace_minutes', sa.Integer(), nullable=False),
        sa.Column('weekly_off_days', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'holidays',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='CASCADE'), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('allow_ot', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('department_id', 'date', name='uq_holiday_dept_date'),
    )
    op.create_index('ix_holidays_date', 'holidays', ['date'], unique=False)

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=True),
        sa.Column('doj', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_emp_dept_id', 'employees', ['department_id'], unique=False)

    # ---- attendance ----
    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('attendance_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('check_in_time', sa.DateTime(), nullable=True),
        sa.Column('check_in_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('check_in_lon', sa.Numeric(9, 6), nullable=True),
        sa.Column('check_in_accuracy_m', sa.Numeric(8, 2), nullable=True),
        sa.Column('check_in_address', sa.Text(), nullable=True),
        sa.Column('check_in_photo_url', sa.Text(), nullable=True),
        sa.Column('check_out_time', sa.DateTime(), nullable=True),
        sa.Column('check_out_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('check_out_lon', sa.Numeric(9, 6), nullable=True),
        sa.Column('check_out_accuracy_m', sa.Numeric(8, 2), nullable=True),
        sa.Column('check_out_address', sa.Text(), nullable=True),
        sa.Column('check_out_photo_url', sa.Text(), nullable=True),
        sa.Column('is_late', sa.Boolean(), nullable=False),
        sa.Column('late_minutes', sa.Integer(), nullable=False),
        sa.Column('regular_hours', sa.Numeric(6, 2), nullable=True),
        sa.Column('working_hours', sa.Numeric(6, 2), nullable=True),
        sa.Column('overtime_hours', sa.Numeric(6, 2), nullable=True),
        sa.Column('ot_status', sa.String(length=16), nullable=False),
        sa.Column('ot_type', sa.String(length=16), nullable=True),
        sa.Column('ot_reason', sa.Text(), nullable=True),
        sa.Column('ot_start_time', sa.DateTime(), nullable=True),
        sa.Column('ot_start_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('ot_start_lon', sa.Numeric(9, 6), nullable=True),
        sa.Column('ot_start_address', sa.Text(), nullable=True),
        sa.Column('ot_start_photo_url', sa.Text(), nullable=True),
        sa.Column('ot_end_time', sa.DateTime(), nullable=True),
        sa.Column('ot_end_lat', sa.Numeric(9, 6), nullable=True),
        sa.Column('ot_end_lon', sa.Numeric(9, 6), nullable=True),
        sa.Column('ot_end_address', sa.Text(), nullable=True),
        sa.Column('ot_end_photo_url', sa.Text(), nullable=True),
        sa.Column('manual_ot_hours', sa.Numeric(6, 2), nullable=True),
        sa.Column('auto_corrected', sa.Boolean(), nullable=False),
        sa.Column('auto_corrected_at', sa.DateTime(), nullable=True),
        sa.Column('auto_correction_reason', sa.Text(), nullable=True),
        sa.Column('admin_review_status', sa.String(length=16), nullable=True),
        sa.Column('reviewed_by', sa.String(length=64), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'work_date', name='uq_attendance_emp_date'),
        sa.CheckConstraint(
            'check_out_time IS NULL OR check_in_time IS NULL OR check_out_time > check_in_time',
            name='ck_attendance_out_after_in',
        ),
        sa.CheckConstraint(
            'ot_end_time IS NULL OR ot_start_time IS NULL OR ot_end_time > ot_start_time',
            name='ck_attendance_ot_end_after_start',
        ),
    )
    op.create_index('ix_attendance_records_employee_id', 'attendance_records', ['employee_id'], unique=False)
    op.create_index('ix_attendance_records_work_date', 'attendance_records', ['work_date'], unique=False)

    # ---- leave ----
    op.create_table(
        'leave_balances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('casual_accrued', sa.Numeric(6, 2), nullable=False),
        sa.Column('casual_used', sa.Numeric(6, 2), nullable=False),
        sa.Column('permission_hours_accrued', sa.Numeric(6, 2), nullable=False),
        sa.Column('permission_hours_used', sa.Numeric(6, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'leave_accruals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=False),
        sa.Column('casual_days', sa.Numeric(6, 2), nullable=False),
        sa.Column('permission_hours', sa.Numeric(6, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('employee_id', 'period', name='uq_leave_accrual_emp_period'),
    )
    op.create_index('ix_leave_accruals_employee_id', 'leave_accruals', ['employee_id'], unique=False)

    op.create_table(
        'leave_applications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('leave_type', sa.String(length=16), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_days', sa.Numeric(5, 2), nullable=False),
        sa.Column('permission_date', sa.Date(), nullable=True),
        sa.Column('permission_hours', sa.Numeric(4, 2), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('affects_payroll', sa.Boolean(), nullable=False),
        sa.Column('deduction_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('deduction_by_month', sa.JSON(), nullable=True),
        sa.Column('linked_application_id', sa.Integer(), sa.ForeignKey('leave_applications.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tl_action_by', sa.String(length=64), nullable=True),
        sa.Column('tl_action_at', sa.DateTime(), nullable=True),
        sa.Column('hr_action_by', sa.String(length=64), nullable=True),
        sa.Column('hr_action_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_leave_applications_employee_id', 'leave_applications', ['employee_id'], unique=False)
    op.create_index('ix_leave_app_emp_dates', 'leave_applications', ['employee_id', 'start_date', 'end_date'], unique=False)

    op.create_table(
        'leave_approval_actions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('leave_application_id', sa.Integer(), sa.ForeignKey('leave_applications.id', ondelete='CASCADE'), nullable=False),
        sa.Column('level', sa.String(length=8), nullable=True),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('acted_by', sa.String(length=64), nullable=True),
        sa.Column('acted_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_leave_approval_actions_leave_application_id', 'leave_approval_actions', ['leave_application_id'], unique=False)

    # ---- payroll configuration ----
    op.create_table(
        'salary_structures',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('fixed_basic', sa.Numeric(12, 2), nullable=False),
        sa.Column('fixed_hra', sa.Numeric(12, 2), nullable=False),
        sa.Column('fixed_conveyance', sa.Numeric(12, 2), nullable=False),
        sa.Column('custom_earnings', sa.JSON(), nullable=False),
        sa.Column('custom_deductions', sa.JSON(), nullable=False),
        sa.Column('epf_applicable', sa.Boolean(), nullable=False),
        sa.Column('esi_applicable', sa.Boolean(), nullable=False),
        sa.Column('vpt_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('per_day_salary_base', sa.String(length=16), nullable=False),
        sa.Column('overtime_rate_multiplier', sa.Numeric(6, 2), nullable=True),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_salary_structures_employee_id', 'salary_structures', ['employee_id'], unique=False)
    op.create_index('ix_salary_structures_emp_active', 'salary_structures', ['employee_id', 'effective_from', 'effective_to'], unique=False)

    op.create_table(
        'payroll_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('epf_employee_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('epf_employer_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('epf_ceiling_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('esi_employee_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('esi_employer_rate', sa.Numeric(6, 4), nullable=False),
        sa.Column('esi_threshold', sa.Numeric(12, 2), nullable=False),
        sa.Column('standard_daily_hours', sa.Numeric(4, 2), nullable=False),
        sa.Column('overtime_rate_multiplier', sa.Numeric(6, 2), nullable=False),
        sa.Column('half_day_credit', sa.Numeric(3, 2), nullable=False),
        sa.Column('exclude_unreviewed_attendance', sa.Boolean(), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_payroll_settings_active', 'payroll_settings', ['effective_from', 'effective_to'], unique=False)

    op.create_table(
        'salary_advances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('monthly_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('number_of_installments', sa.Integer(), nullable=False),
        sa.Column('deduction_start_month', sa.Integer(), nullable=False),
        sa.Column('deduction_start_year', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_salary_advances_employee_id', 'salary_advances', ['employee_id'], unique=False)

    # ---- payroll output ----
    op.create_table(
        'payroll_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month_days', sa.Integer(), nullable=False),
        sa.Column('present_days', sa.Numeric(5, 2), nullable=False),
        sa.Column('paid_leave_days', sa.Numeric(5, 2), nullable=False),
        sa.Column('total_credited_days', sa.Numeric(5, 2), nullable=False),
        sa.Column('overtime_hours', sa.Numeric(6, 2), nullable=False),
        sa.Column('overtime_pay', sa.Numeric(12, 2), nullable=False),
        sa.Column('earned_basic', sa.Numeric(12, 2), nullable=False),
        sa.Column('earned_hra', sa.Numeric(12, 2), nullable=False),
        sa.Column('earned_conveyance', sa.Numeric(12, 2), nullable=False),
        sa.Column('dynamic_earnings', sa.JSON(), nullable=False),
        sa.Column('dynamic_deductions', sa.JSON(), nullable=False),
        sa.Column('epf_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('esi_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('vpt_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('tds_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('unpaid_leave_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('advance_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('employer_epf', sa.Numeric(12, 2), nullable=False),
        sa.Column('employer_esi', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_earnings', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_deductions', sa.Numeric(12, 2), nullable=False),
        sa.Column('net_salary', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('manually_adjusted', sa.Boolean(), nullable=False),
        sa.Column('adjustments_json', sa.JSON(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.Column('approved_by', sa.String(length=64), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'month', 'year', name='uq_payroll_emp_period'),
    )
    op.create_index('ix_payroll_records_employee_id', 'payroll_records', ['employee_id'], unique=False)
    op.create_index('ix_payroll_period', 'payroll_records', ['year', 'month'], unique=False)

    op.create_table(
        'payroll_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('processed_count', sa.Integer(), nullable=False),
        sa.Column('error_count', sa.Integer(), nullable=False),
        sa.Column('errors_json', sa.JSON(), nullable=True),
        sa.Column('triggered_by', sa.String(length=64), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('payroll_runs')
    op.drop_index('ix_payroll_period', table_name='payroll_records')
    op.drop_index('ix_payroll_records_employee_id', table_name='payroll_records')
    op.drop_table('payroll_records')
    op.drop_index('ix_salary_advances_employee_id', table_name='salary_advances')
    op.drop_table('salary_advances')
    op.drop_index('ix_payroll_settings_active', table_name='payroll_settings')
    op.drop_table('payroll_settings')
    op.drop_index('ix_salary_structures_emp_active', table_name='salary_structures')
    op.drop_index('ix_salary_structures_employee_id', table_name='salary_structures')
    op.drop_table('salary_structures')
    op.drop_index('ix_leave_approval_actions_leave_application_id', table_name='leave_approval_actions')
    op.drop_table('leave_approval_actions')
    op.drop_index('ix_leave_app_emp_dates', table_name='leave_applications')
    op.drop_index('ix_leave_applications_employee_id', table_name='leave_applications')
    op.drop_table('leave_applications')
    op.drop_index('ix_leave_accruals_employee_id', table_name='leave_accruals')
    op.drop_table('leave_accruals')
    op.drop_table('leave_balances')
    op.drop_index('ix_attendance_records_work_date', table_name='attendance_records')
    op.drop_index('ix_attendance_records_employee_id', table_name='attendance_records')
    op.drop_table('attendance_records')
    op.drop_index('ix_emp_dept_id', table_name='employees')
    op.drop_table('employees')
    op.drop_index('ix_holidays_date', table_name='holidays')
    op.drop_table('holidays')
    op.drop_table('department_timings')
    op.drop_table('departments')
