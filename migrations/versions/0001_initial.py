"""online classes: directory, recurrences, sessions, activations

Revision ID: 0001
Revises:
Create Date: 2025-09-05

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

# SQLAlchemy хранит в Enum-колонках имена членов перечисления
RULE_TYPE = sa.Enum('DAILY', 'WEEKLY', 'BIWEEKLY', 'CUSTOM', name='ruletype')
SESSION_STATUS = sa.Enum('SCHEDULED', 'LIVE', 'ENDED', 'CANCELED', name='sessionstatus')
DURATION_TYPE = sa.Enum('DAILY', 'WEEKLY', 'MONTHLY', 'QUARTERLY', 'SEMESTRAL', 'YEARLY', name='durationtype')
ACTIVATION_STATUS = sa.Enum('ACTIVE', 'EXPIRED', 'CANCELLED', name='activationstatus')
ENUMS = (RULE_TYPE, SESSION_STATUS, DURATION_TYPE, ACTIVATION_STATUS)

def upgrade():
    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        for enum in ENUMS:
            enum.create(bind, checkfirst=True)

    op.create_table('school',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
    )

    op.create_table('school_class',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('school.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.UniqueConstraint('school_id', 'name', name='uq_school_class_name'),
    )
    op.create_index('ix_school_class_school_id', 'school_class', ['school_id'])

    op.create_table('user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('school.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)
    op.create_index('ix_user_school_id', 'user', ['school_id'])

    op.create_table('timetable_slot',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('school.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
    )
    op.create_index('ix_timetable_school_day', 'timetable_slot', ['school_id', 'day_of_week'])

    op.create_table('online_class_recurrences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('school.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('school_class.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('rule_type', RULE_TYPE, nullable=False),
        sa.Column('interval', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('by_day', sa.JSON(), nullable=True),
        sa.Column('custom_dates', sa.JSON(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('occurrences_generated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_generated', sa.DateTime(), nullable=True),
        sa.Column('next_generation_horizon', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('paused_at', sa.DateTime(), nullable=True),
        sa.Column('paused_by', sa.Integer(), sa.ForeignKey('user.id', ondelete='SET NULL'), nullable=True),
        sa.Column('pause_reason', sa.Text(), nullable=True),
        sa.Column('auto_notify', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_online_class_recurrences_school_id', 'online_class_recurrences', ['school_id'])

    op.create_table('class_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recurrence_id', sa.Integer(),
                  sa.ForeignKey('online_class_recurrences.id', ondelete='SET NULL'), nullable=True),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('school.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('school_class.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('scheduled_start', sa.DateTime(), nullable=False),
        sa.Column('scheduled_end', sa.DateTime(), nullable=False),
        sa.Column('actual_start', sa.DateTime(), nullable=True),
        sa.Column('actual_end', sa.DateTime(), nullable=True),
        sa.Column('status', SESSION_STATUS, nullable=False),
        sa.Column('room_name', sa.String(100), nullable=False, unique=True),
        sa.Column('max_duration', sa.Integer(), nullable=False, server_default='120'),
        sa.Column('creator_type', sa.String(20), nullable=False, server_default='school'),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('notifications_sent', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('reminder_sent', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('recurrence_id', 'session_date', name='uq_session_recurrence_date'),
    )
    op.create_index('ix_class_sessions_recurrence_id', 'class_sessions', ['recurrence_id'])
    op.create_index('ix_class_sessions_school_id', 'class_sessions', ['school_id'])
    op.create_index('ix_class_sessions_teacher_id', 'class_sessions', ['teacher_id'])
    op.create_index('ix_class_sessions_scheduled_start', 'class_sessions', ['scheduled_start'])

    op.create_table('online_class_activations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('activator_type', sa.String(20), nullable=False),
        sa.Column('activator_id', sa.Integer(), nullable=False),
        sa.Column('duration_type', DURATION_TYPE, nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', ACTIVATION_STATUS, nullable=False),
        sa.Column('activated_by', sa.String(30), nullable=False, server_default='admin_manual'),
        sa.Column('admin_user_id', sa.Integer(), nullable=True),
        sa.Column('payment_id', sa.String(100), nullable=True),
        sa.Column('payment_method', sa.String(30), nullable=True),
        sa.Column('amount_paid', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_activation_lookup', 'online_class_activations',
                    ['activator_type', 'activator_id', 'status'])

def downgrade():
    op.drop_index('ix_activation_lookup', table_name='online_class_activations')
    op.drop_table('online_class_activations')
    for ix in ('ix_class_sessions_scheduled_start', 'ix_class_sessions_teacher_id',
               'ix_class_sessions_school_id', 'ix_class_sessions_recurrence_id'):
        op.drop_index(ix, table_name='class_sessions')
    op.drop_table('class_sessions')
    op.drop_index('ix_online_class_recurrences_school_id', table_name='online_class_recurrences')
    op.drop_table('online_class_recurrences')
    op.drop_index('ix_timetable_school_day', table_name='timetable_slot')
    op.drop_table('timetable_slot')
    op.drop_index('ix_user_school_id', table_name='user')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_table('user')
    op.drop_index('ix_school_class_school_id', table_name='school_class')
    op.drop_table('school_class')
    op.drop_table('school')

    bind = op.get_bind()
    if bind.dialect.name != "sqlite":
        for enum in reversed(ENUMS):
            enum.drop(bind, checkfirst=True)
