"""Container resource metrics

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create resource_metrics table
    op.create_table(
        'resource_metrics',
        sa.Column('id', sa.CHAR(36), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('account_id', sa.CHAR(36), nullable=False),
        sa.Column('container_id', sa.CHAR(36), nullable=False),
        sa.Column('cpu_usage_millicores', sa.Integer(), nullable=False),
        sa.Column('cpu_usage_percent', sa.Float(), nullable=False),
        sa.Column('memory_usage_bytes', sa.BigInteger(), nullable=False),
        sa.Column('memory_usage_percent', sa.Float(), nullable=False),
        sa.Column('disk_usage_bytes', sa.BigInteger(), nullable=False),
        sa.Column('disk_usage_percent', sa.Float(), nullable=False),
        sa.Column('cpu_threshold_exceeded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('memory_threshold_exceeded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('disk_threshold_exceeded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('recorded_at', sa.TIMESTAMP(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['container_id'], ['containers.id'], ondelete='CASCADE')
    )
    op.create_index(
        'idx_resource_metrics_container_recorded',
        'resource_metrics',
        ['container_id', 'recorded_at']
    )
    op.create_index(
        'idx_resource_metrics_account_container',
        'resource_metrics',
        ['account_id', 'container_id']
    )


def downgrade() -> None:
    op.drop_index('idx_resource_metrics_account_container', table_name='resource_metrics')
    op.drop_index('idx_resource_metrics_container_recorded', table_name='resource_metrics')
    op.drop_table('resource_metrics')
