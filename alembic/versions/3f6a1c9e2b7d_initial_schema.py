"""Initial schema: tenants, tracked activity, integrations and synced resources.

Revision ID: 3f6a1c9e2b7d
Revises:
Create Date: 2026-09-14
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '3f6a1c9e2b7d'
down_revision = None
branch_labels = None
depends_on = None


def _json():
    return postgresql.JSONB().with_variant(sa.JSON(), 'sqlite')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'organization',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('settings', _json(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )

    op.create_table(
        'user',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column(
            'role',
            sa.Enum('admin', 'manager', 'employee', name='user_role_enum', native_enum=False),
            server_default=sa.text("'employee'"),
            nullable=False,
        ),
        sa.Column('organization_id', sa.Uuid(), nullable=True),
        sa.Column('can_blur_screenshots', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_user_organization_id', 'user', ['organization_id'], unique=False)
    op.create_index('idx_user_org_role', 'user', ['organization_id', 'role'], unique=False)

    op.create_table(
        'time_entry',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('external_task_id', sa.String(length=255), nullable=True),
        sa.Column('external_project_id', sa.String(length=255), nullable=True),
        sa.Column('activity_percentage', sa.Integer(), nullable=False),
        sa.Column('mouse_clicks', sa.Integer(), nullable=False),
        sa.Column('keyboard_strokes', sa.Integer(), nullable=False),
        sa.Column('window_title', sa.String(length=500), nullable=True),
        sa.Column('application_name', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_time_entry_user_id', 'time_entry', ['user_id'], unique=False)
    op.create_index('idx_time_entry_user_start', 'time_entry', ['user_id', 'start_time'], unique=False)

    op.create_table(
        'screenshot',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('time_entry_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('storage_key', sa.String(length=512), nullable=False),
        sa.Column('storage_key_blurred', sa.String(length=512), nullable=True),
        sa.Column('is_blurred', sa.Boolean(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('window_title', sa.String(length=500), nullable=True),
        sa.Column('application_name', sa.String(length=255), nullable=True),
        sa.Column('metadata', _json(), nullable=True),
        sa.Column('upload_status', sa.String(length=20), nullable=False),
        sa.Column('processing_attempts', sa.Integer(), nullable=False),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['time_entry_id'], ['time_entry.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_screenshot_time_entry_id', 'screenshot', ['time_entry_id'], unique=False)
    op.create_index('ix_screenshot_user_id', 'screenshot', ['user_id'], unique=False)
    op.create_index('idx_screenshot_user_timestamp', 'screenshot', ['user_id', 'timestamp'], unique=False)

    op.create_table(
        'integration',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('scope_key', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('access_token_encrypted', sa.Text(), nullable=False),
        sa.Column('refresh_token_encrypted', sa.Text(), nullable=True),
        sa.Column('token_type', sa.String(length=50), nullable=True),
        sa.Column('scope', sa.String(length=500), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider_account_id', sa.String(length=255), nullable=True),
        sa.Column('provider_metadata', _json(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('last_error_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('connected_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'organization_id', 'provider', 'scope_key', name='uq_integration_org_provider_scope'
        ),
    )
    op.create_index('ix_integration_organization_id', 'integration', ['organization_id'], unique=False)
    op.create_index('ix_integration_provider', 'integration', ['provider'], unique=False)
    op.create_index('idx_integration_active_provider', 'integration', ['is_active', 'provider'], unique=False)

    op.create_table(
        'integration_config',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('integration_id', sa.Uuid(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', _json(), nullable=True),
        sa.ForeignKeyConstraint(['integration_id'], ['integration.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('integration_id', 'key', name='uq_integration_config_key'),
    )
    op.create_index('ix_integration_config_integration_id', 'integration_config', ['integration_id'], unique=False)

    op.create_table(
        'time_entry_mapping',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('time_entry_id', sa.Uuid(), nullable=False),
        sa.Column('integration_id', sa.Uuid(), nullable=False),
        sa.Column('external_task_id', sa.String(length=255), nullable=False),
        sa.Column('external_entry_id', sa.String(length=255), nullable=True),
        sa.Column('sync_status', sa.String(length=20), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_error', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['integration_id'], ['integration.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['time_entry_id'], ['time_entry.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_time_entry_mapping_time_entry_id', 'time_entry_mapping', ['time_entry_id'], unique=False)
    op.create_index('ix_time_entry_mapping_integration_id', 'time_entry_mapping', ['integration_id'], unique=False)

    op.create_table(
        'synced_resource',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('organization_id', sa.Uuid(), nullable=False),
        sa.Column('integration_id', sa.Uuid(), nullable=False),
        sa.Column('resource_type', sa.String(length=20), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('parent_id', sa.Uuid(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('path', sa.Text(), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('provider_type', sa.String(length=50), nullable=True),
        sa.Column('resource_metadata', _json(), nullable=True),
        sa.Column('is_selectable', sa.Boolean(), nullable=False),
        sa.Column('sync_status', sa.String(length=20), nullable=False),
        sa.Column('sync_error', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_accessed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('access_count', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organization.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['integration_id'], ['integration.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['synced_resource.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'organization_id', 'integration_id', 'external_id',
            name='uq_synced_resource_org_integration_external',
        ),
    )
    op.create_index('ix_synced_resource_parent_id', 'synced_resource', ['parent_id'], unique=False)
    op.create_index(
        'idx_synced_resource_integration_type', 'synced_resource', ['integration_id', 'resource_type'], unique=False
    )
    op.create_index('idx_synced_resource_name', 'synced_resource', ['integration_id', 'name'], unique=False)

    op.create_table(
        'recent_resource',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('resource_id', sa.Uuid(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('use_count', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['resource_id'], ['synced_resource.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'resource_id', name='uq_recent_resource_user_resource'),
    )
    op.create_index(
        'idx_recent_resource_user_last_used', 'recent_resource', ['user_id', 'last_used_at'], unique=False
    )

    op.create_table(
        'favorite_resource',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('resource_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['resource_id'], ['synced_resource.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'resource_id', name='uq_favorite_resource_user_resource'),
    )

    op.create_table(
        'user_integration_preference',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('integration_id', sa.Uuid(), nullable=False),
        sa.Column('default_container_id', sa.Uuid(), nullable=True),
        sa.Column('default_project_id', sa.Uuid(), nullable=True),
        sa.Column('default_collection_id', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['integration_id'], ['integration.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['default_container_id'], ['synced_resource.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['default_project_id'], ['synced_resource.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['default_collection_id'], ['synced_resource.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'integration_id', name='uq_user_integration_preference'),
    )

    op.create_table(
        'failed_job',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.Column('queue', sa.String(length=100), nullable=False),
        sa.Column('task_name', sa.String(length=255), nullable=False),
        sa.Column('task_id', sa.String(length=255), nullable=True),
        sa.Column('payload', _json(), nullable=True),
        sa.Column('error', sa.Text(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_failed_job_queue_created', 'failed_job', ['queue', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_failed_job_queue_created', table_name='failed_job')
    op.drop_table('failed_job')
    op.drop_table('user_integration_preference')
    op.drop_table('favorite_resource')
    op.drop_index('idx_recent_resource_user_last_used', table_name='recent_resource')
    op.drop_table('recent_resource')
    op.drop_index('idx_synced_resource_name', table_name='synced_resource')
    op.drop_index('idx_synced_resource_integration_type', table_name='synced_resource')
    op.drop_index('ix_synced_resource_parent_id', table_name='synced_resource')
    op.drop_table('synced_resource')
    op.drop_index('ix_time_entry_mapping_integration_id', table_name='time_entry_mapping')
    op.drop_index('ix_time_entry_mapping_time_entry_id', table_name='time_entry_mapping')
    op.drop_table('time_entry_mapping')
    op.drop_index('ix_integration_config_integration_id', table_name='integration_config')
    op.drop_table('integration_config')
    op.drop_index('idx_integration_active_provider', table_name='integration')
    op.drop_index('ix_integration_provider', table_name='integration')
    op.drop_index('ix_integration_organization_id', table_name='integration')
    op.drop_table('integration')
    op.drop_index('idx_screenshot_user_timestamp', table_name='screenshot')
    op.drop_index('ix_screenshot_user_id', table_name='screenshot')
    op.drop_index('ix_screenshot_time_entry_id', table_name='screenshot')
    op.drop_table('screenshot')
    op.drop_index('idx_time_entry_user_start', table_name='time_entry')
    op.drop_index('ix_time_entry_user_id', table_name='time_entry')
    op.drop_table('time_entry')
    op.drop_index('idx_user_org_role', table_name='user')
    op.drop_index('ix_user_organization_id', table_name='user')
    op.drop_table('user')
    op.drop_table('organization')
