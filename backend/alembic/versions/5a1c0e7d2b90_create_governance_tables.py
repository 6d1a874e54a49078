"""create_governance_tables

Revision ID: 5a1c0e7d2b90
Revises:
Create Date: 2026-10-17 09:12:41.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5a1c0e7d2b90'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'governance_policies',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('company_id', sa.Uuid(), nullable=False),
        sa.Column('branch_id', sa.Uuid(), nullable=True),
        sa.Column('entity_type', sa.String(64), nullable=False),
        sa.Column('action_type', sa.String(64), nullable=False),
        sa.Column('threshold_amount', sa.Numeric(18, 2), nullable=True),
        sa.Column('threshold_pct', sa.Numeric(10, 4), nullable=True),
        sa.Column('approval_steps', sa.JSON(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('updated_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_gov_policies_scope', 'governance_policies',
        ['company_id', 'branch_id', 'entity_type', 'action_type'],
    )

    op.create_table(
        'governance_approval_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('company_id', sa.Uuid(), nullable=False),
        sa.Column('branch_id', sa.Uuid(), nullable=True),
        sa.Column('entity_type', sa.String(64), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False),
        sa.Column('action_type', sa.String(64), nullable=False),
        sa.Column('policy_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('requested_by', sa.Uuid(), nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reason', sa.String(1024), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_gov_requests_scope', 'governance_approval_requests',
        ['company_id', 'branch_id', 'entity_type', 'action_type'],
    )
    op.create_index('ix_gov_requests_entity', 'governance_approval_requests', ['entity_type', 'entity_id'])
    op.create_index('ix_governance_approval_requests_status', 'governance_approval_requests', ['status'])
    op.create_index('ix_governance_approval_requests_requested_by', 'governance_approval_requests', ['requested_by'])

    op.create_table(
        'governance_approval_steps',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('approval_request_id', sa.Uuid(), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('required_role', sa.String(64), nullable=True),
        sa.Column('required_permission', sa.String(128), nullable=True),
        sa.Column('due_hours', sa.Numeric(10, 2), nullable=True),
        sa.Column('allow_self_approval', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decided_by', sa.Uuid(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decision_reason', sa.String(1024), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(
            ['approval_request_id'], ['governance_approval_requests.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_gov_steps_request_order', 'governance_approval_steps',
        ['approval_request_id', 'step_order'], unique=True,
    )
    op.create_index('ix_governance_approval_steps_status', 'governance_approval_steps', ['status'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=True),
        sa.Column('before_state', sa.Text(), nullable=True),
        sa.Column('after_state', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])


def downgrade() -> None:
    op.drop_index('ix_audit_logs_entity_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_entity_type', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_governance_approval_steps_status', table_name='governance_approval_steps')
    op.drop_index('ix_gov_steps_request_order', table_name='governance_approval_steps')
    op.drop_table('governance_approval_steps')
    op.drop_index('ix_governance_approval_requests_requested_by', table_name='governance_approval_requests')
    op.drop_index('ix_governance_approval_requests_status', table_name='governance_approval_requests')
    op.drop_index('ix_gov_requests_entity', table_name='governance_approval_requests')
    op.drop_index('ix_gov_requests_scope', table_name='governance_approval_requests')
    op.drop_table('governance_approval_requests')
    op.drop_index('ix_gov_policies_scope', table_name='governance_policies')
    op.drop_table('governance_policies')
