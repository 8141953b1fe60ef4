"""approval_workflow_schema

Revision ID: 4b7e2c91d0a3
Revises:
Create Date: 2026-10-18 09:12:41.204118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4b7e2c91d0a3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        _id(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('reporting_to_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('whatsapp_phone', sa.String(32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['reporting_to_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_users_tenant_email'),
    )
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_reporting_to_id', 'users', ['reporting_to_id'])

    op.create_table(
        'approval_policies',
        _id(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('module', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('min_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('max_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('min_days', sa.Integer(), nullable=True),
        sa.Column('max_days', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approval_policies_tenant_id', 'approval_policies', ['tenant_id'])
    op.create_index('ix_approval_policies_module', 'approval_policies', ['module'])

    op.create_table(
        'approval_levels',
        _id(),
        sa.Column('policy_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('level_order', sa.Integer(), nullable=False),
        sa.Column('approver_role', sa.String(50), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['policy_id'], ['approval_policies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('policy_id', 'level_order', name='uq_approval_levels_policy_order'),
    )
    op.create_index('ix_approval_levels_policy_id', 'approval_levels', ['policy_id'])

    op.create_table(
        'approval_steps',
        _id(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('policy_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('requester_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('level_order', sa.Integer(), nullable=False),
        sa.Column('approver_role', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('resolved_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decision_channel', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['policy_id'], ['approval_policies.id']),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id']),
        sa.ForeignKeyConstraint(['resolved_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_type', 'entity_id', 'level_order', name='uq_approval_steps_entity_level'),
    )
    op.create_index('ix_approval_steps_tenant_id', 'approval_steps', ['tenant_id'])
    op.create_index('ix_approval_steps_entity_id', 'approval_steps', ['entity_id'])
    op.create_index('ix_approval_steps_requester_id', 'approval_steps', ['requester_id'])
    op.create_index('ix_approval_steps_status', 'approval_steps', ['status'])

    op.create_table(
        'approver_delegations',
        _id(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('delegator_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('delegatee_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.String(500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['delegator_id'], ['users.id']),
        sa.ForeignKeyConstraint(['delegatee_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('end_date > start_date', name='ck_approver_delegations_window'),
    )
    op.create_index('ix_approver_delegations_tenant_id', 'approver_delegations', ['tenant_id'])
    op.create_index('ix_approver_delegations_delegator_id', 'approver_delegations', ['delegator_id'])
    op.create_index('ix_approver_delegations_delegatee_id', 'approver_delegations', ['delegatee_id'])

    op.create_table(
        'remote_action_tokens',
        _id(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('token_id', sa.String(64), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('approver_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_remote_action_tokens_tenant_id', 'remote_action_tokens', ['tenant_id'])
    op.create_index('ix_remote_action_tokens_token_id', 'remote_action_tokens', ['token_id'], unique=True)
    op.create_index('ix_remote_action_tokens_entity_id', 'remote_action_tokens', ['entity_id'])
    op.create_index('ix_remote_action_tokens_expires_at', 'remote_action_tokens', ['expires_at'])

    op.create_table(
        'audit_logs',
        _id(),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor_email', sa.String(255), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('before_state', sa.Text(), nullable=True),
        sa.Column('after_state', sa.Text(), nullable=True),
        sa.Column('channel', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])

    # Audit trail is append-only
    op.execute("REVOKE UPDATE, DELETE ON audit_logs FROM PUBLIC;")
    op.execute("GRANT SELECT, INSERT ON audit_logs TO PUBLIC;")


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('remote_action_tokens')
    op.drop_table('approver_delegations')
    op.drop_table('approval_steps')
    op.drop_table('approval_levels')
    op.drop_table('approval_policies')
    op.drop_table('users')
