"""Quota accounting schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create accounts table
    op.create_table(
        'accounts',
        sa.Column('id', sa.CHAR(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('plan', sa.String(20), nullable=False, server_default='free'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_accounts_plan', 'accounts', ['plan'])

    # Create usage_records table
    op.create_table(
        'usage_records',
        sa.Column('id', sa.CHAR(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('account_id', sa.CHAR(36), nullable=False),
        sa.Column('plan_id', sa.String(20), nullable=False, server_default='free'),
        sa.Column('messages_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('messages_month_start', sa.TIMESTAMP(), nullable=False),
        sa.Column('api_calls_today', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('api_calls_day_start', sa.TIMESTAMP(), nullable=False),
        sa.Column('agent_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('container_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reset', sa.TIMESTAMP(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('account_id', name='uk_usage_account')
    )

    # Create resource_quotas table
    op.create_table(
        'resource_quotas',
        sa.Column('id', sa.CHAR(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('account_id', sa.CHAR(36), nullable=False),
        sa.Column('plan_id', sa.String(20), nullable=False),
        sa.Column('max_cpu_per_container', sa.Integer(), nullable=False),
        sa.Column('max_memory_per_container', sa.Integer(), nullable=False),
        sa.Column('max_disk_per_container', sa.Integer(), nullable=False),
        sa.Column('max_total_cpu', sa.Integer(), nullable=False),
        sa.Column('max_total_memory', sa.Integer(), nullable=False),
        sa.Column('max_total_disk', sa.Integer(), nullable=False),
        sa.Column('current_total_cpu_in_use', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_total_memory_in_use', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_total_disk_in_use', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('account_id', name='uk_resource_quota_account')
    )

    # Create containers table
    op.create_table(
        'containers',
        sa.Column('id', sa.CHAR(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('account_id', sa.CHAR(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('image_tag', sa.String(255), nullable=False),
        sa.Column('cpu_limit', sa.Integer(), nullable=False),
        sa.Column('memory_limit', sa.Integer(), nullable=False),
        sa.Column('disk_limit', sa.Integer(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('provisioning', 'running', 'stopped', 'failed', name='containerstatus'),
            nullable=False
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE')
    )
    op.create_index('idx_containers_account', 'containers', ['account_id'])


def downgrade() -> None:
    op.drop_index('idx_containers_account', table_name='containers')
    op.drop_table('containers')
    op.drop_table('resource_quotas')
    op.drop_table('usage_records')
    op.drop_index('idx_accounts_plan', table_name='accounts')
    op.drop_table('accounts')
