"""Initial schema: projects, milestones, features, subtasks, attachments, changelog.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PRIORITIES = ('LOW', 'MEDIUM', 'HIGH', 'URGENT')
FEATURE_STATUSES = ('BACKLOG', 'TODO', 'IN_PROGRESS', 'IN_REVIEW', 'DONE', 'CANCELLED')
SUBTASK_STATUSES = ('OPEN', 'DONE')
CHANGE_ACTIONS = (
    'FEATURE_CREATED', 'FEATURE_DELETED', 'FEATURE_UPDATED', 'STATUS_CHANGED', 'PRIORITY_CHANGED',
    'SPEC_UPDATED', 'SUBTASK_DONE', 'SUBTASK_REOPENED', 'SUBTASK_CREATED',
)
CHANGE_SOURCES = ('human', 'agent')


def upgrade() -> None:
    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('repo_url', sa.String(2048)),
        sa.Column('context_md', sa.Text),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])

    op.create_table(
        'milestones',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('target_date', sa.DateTime),
        sa.Column('position', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_milestones_project_id', 'milestones', ['project_id'])
    op.create_index('ix_milestones_project_position', 'milestones', ['project_id', 'position'])

    op.create_table(
        'features',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('milestone_id', sa.Uuid(), sa.ForeignKey('milestones.id', ondelete='SET NULL')),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('spec', sa.Text),
        sa.Column('priority', sa.Enum(*PRIORITIES, name='priority'), nullable=False, server_default='MEDIUM'),
        sa.Column('status', sa.Enum(*FEATURE_STATUSES, name='featurestatus'), nullable=False, server_default='BACKLOG'),
        sa.Column('position', sa.Integer, nullable=False, server_default='0'),
        sa.Column('branch_url', sa.String(2048)),
        sa.Column('pr_url', sa.String(2048)),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_features_project_id', 'features', ['project_id'])
    op.create_index('ix_features_milestone_id', 'features', ['milestone_id'])
    op.create_index('ix_features_status', 'features', ['status'])
    op.create_index('ix_features_project_status_position', 'features', ['project_id', 'status', 'position'])

    op.create_table(
        'subtasks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('feature_id', sa.Uuid(), sa.ForeignKey('features.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('status', sa.Enum(*SUBTASK_STATUSES, name='subtaskstatus'), nullable=False, server_default='OPEN'),
        sa.Column('position', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_subtasks_feature_id', 'subtasks', ['feature_id'])

    op.create_table(
        'attachments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('feature_id', sa.Uuid(), sa.ForeignKey('features.id', ondelete='CASCADE'), nullable=False),
        sa.Column('filename', sa.String(255), nullable=False, unique=True),
        sa.Column('original_name', sa.String(500), nullable=False),
        sa.Column('mime_type', sa.String(255), nullable=False),
        sa.Column('size', sa.Integer, nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_attachments_feature_id', 'attachments', ['feature_id'])

    # Append-only audit trail; titles are snapshots taken at write time
    op.create_table(
        'changelog',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action', sa.Enum(*CHANGE_ACTIONS, name='changeaction'), nullable=False),
        sa.Column('summary', sa.Text, nullable=False),
        sa.Column('feature_id', sa.Uuid(), sa.ForeignKey('features.id', ondelete='CASCADE')),
        sa.Column('feature_title', sa.String(500)),
        sa.Column('subtask_id', sa.Uuid(), sa.ForeignKey('subtasks.id', ondelete='SET NULL')),
        sa.Column('subtask_title', sa.String(500)),
        sa.Column('meta', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')),
        sa.Column('source', sa.Enum(*CHANGE_SOURCES, name='changesource'), nullable=False, server_default='human'),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_changelog_feature_id', 'changelog', ['feature_id'])
    op.create_index('ix_changelog_project_created', 'changelog', ['project_id', 'created_at'])


def downgrade() -> None:
    # Drop tables (children first)
    op.drop_table('changelog')
    op.drop_table('attachments')
    op.drop_table('subtasks')
    op.drop_table('features')
    op.drop_table('milestones')
    op.drop_table('projects')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS changesource')
    op.execute('DROP TYPE IF EXISTS changeaction')
    op.execute('DROP TYPE IF EXISTS subtaskstatus')
    op.execute('DROP TYPE IF EXISTS featurestatus')
    op.execute('DROP TYPE IF EXISTS priority')
