"""Initial workflow schema

Creates the reference tables (users, entities), audits, observations with
their append-only status history, SLA rules, evidence, the activity log and
in-app notifications.

Enum types are shared between columns (e.g. observation status is used by
status, previous_status and the history table), so they are created once up
front with checkfirst and referenced with create_type=False.

Revision ID: 0001_initial_workflow_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_initial_workflow_schema'
down_revision = None
branch_labels = None
depends_on = None


audit_type = postgresql.ENUM(
    'INTERNAL', 'EXTERNAL', 'ISO', 'SOC', 'FINANCIAL', 'IT', 'COMPLIANCE',
    name='audittype', create_type=False,
)
audit_status = postgresql.ENUM(
    'PLANNED', 'IN_PROGRESS', 'UNDER_REVIEW', 'CLOSED', 'CANCELLED',
    name='auditstatus', create_type=False,
)
observation_status = postgresql.ENUM(
    'OPEN', 'IN_PROGRESS', 'EVIDENCE_SUBMITTED', 'UNDER_REVIEW', 'REJECTED', 'CLOSED', 'OVERDUE',
    name='observationstatus', create_type=False,
)
risk_rating = postgresql.ENUM(
    'CRITICAL', 'HIGH', 'MEDIUM', 'LOW', 'INFORMATIONAL',
    name='riskrating', create_type=False,
)
evidence_status = postgresql.ENUM(
    'PENDING_REVIEW', 'APPROVED', 'REJECTED',
    name='evidencestatus', create_type=False,
)

ALL_ENUMS = (audit_type, audit_status, observation_status, risk_rating, evidence_status)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'entities',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_entities_code', 'entities', ['code'], unique=True)

    op.create_table(
        'audits',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('audit_number', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('type', audit_type, nullable=False),
        sa.Column('status', audit_status, nullable=False),
        sa.Column('entity_id', sa.Integer, sa.ForeignKey('entities.id'), nullable=True),
        sa.Column('lead_auditor_id', sa.Integer, sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_by_id', sa.Integer, nullable=True),
        sa.Column('period_start', sa.Date, nullable=False),
        sa.Column('period_end', sa.Date, nullable=False),
        sa.Column('planned_start_date', sa.Date, nullable=True),
        sa.Column('planned_end_date', sa.Date, nullable=True),
        sa.Column('actual_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_audits_audit_number', 'audits', ['audit_number'], unique=True)
    op.create_index('ix_audits_type', 'audits', ['type'])
    op.create_index('ix_audits_status', 'audits', ['status'])
    op.create_index('ix_audits_entity_id', 'audits', ['entity_id'])
    op.create_index('ix_audits_lead_auditor_id', 'audits', ['lead_auditor_id'])
    op.create_index('ix_audits_deleted_at', 'audits', ['deleted_at'])

    op.create_table(
        'observations',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('audit_id', sa.Integer, sa.ForeignKey('audits.id'), nullable=False),
        sa.Column('sequence_number', sa.Integer, nullable=False),
        sa.Column('global_sequence', sa.String(50), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('entity_id', sa.Integer, sa.ForeignKey('entities.id'), nullable=True),
        sa.Column('root_cause', sa.Text, nullable=True),
        sa.Column('recommendation', sa.Text, nullable=True),
        sa.Column('corrective_action_plan', sa.Text, nullable=True),
        sa.Column('management_response', sa.Text, nullable=True),
        sa.Column('status', observation_status, nullable=False),
        sa.Column('previous_status', observation_status, nullable=True),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_changed_by_id', sa.Integer, nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('risk_rating', risk_rating, nullable=False),
        sa.Column('open_date', sa.Date, nullable=False),
        sa.Column('target_date', sa.Date, nullable=False),
        sa.Column('original_target_date', sa.Date, nullable=False),
        sa.Column('sla_calculated_date', sa.Date, nullable=False),
        sa.Column('sla_days', sa.Integer, nullable=False),
        sa.Column('extension_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('extension_reason', sa.Text, nullable=True),
        sa.Column('owner_id', sa.Integer, sa.ForeignKey('users.id'), nullable=True),
        sa.Column('reviewer_id', sa.Integer, sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_by_id', sa.Integer, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('audit_id', 'sequence_number', name='uq_observations_audit_sequence'),
    )
    op.create_index('ix_observations_audit_id', 'observations', ['audit_id'])
    op.create_index('ix_observations_global_sequence', 'observations', ['global_sequence'], unique=True)
    op.create_index('ix_observations_entity_id', 'observations', ['entity_id'])
    op.create_index('ix_observations_status', 'observations', ['status'])
    op.create_index('ix_observations_risk_rating', 'observations', ['risk_rating'])
    op.create_index('ix_observations_target_date', 'observations', ['target_date'])
    op.create_index('ix_observations_owner_id', 'observations', ['owner_id'])
    op.create_index('ix_observations_reviewer_id', 'observations', ['reviewer_id'])
    op.create_index('ix_observations_deleted_at', 'observations', ['deleted_at'])

    op.create_table(
        'observation_status_history',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('observation_id', sa.Integer, sa.ForeignKey('observations.id'), nullable=False),
        sa.Column('from_status', observation_status, nullable=True),
        sa.Column('to_status', observation_status, nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('changed_by_id', sa.Integer, nullable=True),
        sa.Column('changed_by_source', sa.String(20), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_observation_status_history_observation_id', 'observation_status_history', ['observation_id'])
    op.create_index('ix_observation_status_history_changed_at', 'observation_status_history', ['changed_at'])

    op.create_table(
        'sla_rules',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('risk_rating', risk_rating, nullable=True),
        sa.Column('audit_type', audit_type, nullable=True),
        sa.Column('base_days', sa.Integer, nullable=False),
        sa.Column('warning_days', sa.Integer, nullable=False, server_default='7'),
        sa.Column('critical_days', sa.Integer, nullable=False, server_default='3'),
        sa.Column('escalation_days', sa.Integer, nullable=False, server_default='1'),
        sa.Column('priority', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_sla_rules_risk_rating', 'sla_rules', ['risk_rating'])
    op.create_index('ix_sla_rules_audit_type', 'sla_rules', ['audit_type'])
    op.create_index('ix_sla_rules_is_active', 'sla_rules', ['is_active'])

    op.create_table(
        'evidence',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('observation_id', sa.Integer, sa.ForeignKey('observations.id'), nullable=False),
        sa.Column('status', evidence_status, nullable=False),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('supersedes_id', sa.Integer, sa.ForeignKey('evidence.id'), nullable=True),
        sa.Column('superseded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('file_size', sa.Integer, nullable=False),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('checksum', sa.String(64), nullable=False),
        sa.Column('uploaded_by_id', sa.Integer, nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reviewed_by_id', sa.Integer, nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_remarks', sa.Text, nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_evidence_observation_id', 'evidence', ['observation_id'])
    op.create_index('ix_evidence_status', 'evidence', ['status'])
    op.create_index('ix_evidence_supersedes_id', 'evidence', ['supersedes_id'])
    op.create_index('ix_evidence_checksum', 'evidence', ['checksum'])
    op.create_index('ix_evidence_deleted_at', 'evidence', ['deleted_at'])

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('actor_id', sa.Integer, nullable=True),
        sa.Column('actor_source', sa.String(20), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('resource_type', sa.String(50), nullable=True),
        sa.Column('resource_id', sa.Integer, nullable=True),
        sa.Column('details', sa.JSON, nullable=True),
    )
    op.create_index('ix_activity_logs_timestamp', 'activity_logs', ['timestamp'])
    op.create_index('ix_activity_logs_actor_id', 'activity_logs', ['actor_id'])
    op.create_index('ix_activity_logs_action', 'activity_logs', ['action'])
    op.create_index('ix_activity_logs_resource_type', 'activity_logs', ['resource_type'])
    op.create_index('ix_activity_logs_resource_id', 'activity_logs', ['resource_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, nullable=False),
        sa.Column('observation_id', sa.Integer, nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('data', sa.JSON, nullable=True),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_observation_id', 'notifications', ['observation_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('activity_logs')
    op.drop_table('evidence')
    op.drop_table('sla_rules')
    op.drop_table('observation_status_history')
    op.drop_table('observations')
    op.drop_table('audits')
    op.drop_table('entities')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
