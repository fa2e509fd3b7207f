"""initial issue feed schema

Users (read-only mirror of the auth service), issues with images and tags,
upvotes and comments.

Revision ID: 0001_initial_issue_feed
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_issue_feed'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(*values: str) -> sa.Enum:
    return sa.Enum(*values, native_enum=False, length=20)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('role', _enum('super_admin', 'admin', 'staff', 'citizen'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_name', 'users', ['name'])

    op.create_table(
        'issues',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=False),
        sa.Column('category', _enum('INFRASTRUCTURE', 'SANITATION', 'TRAFFIC', 'ENVIRONMENT', 'UTILITIES',
                                    'SAFETY', 'TRANSPORT', 'CLEANLINESS', 'GOVERNANCE', 'OTHER'), nullable=False),
        sa.Column('priority', _enum('LOW', 'MEDIUM', 'HIGH', 'URGENT', 'CRITICAL'), nullable=False),
        sa.Column('status', _enum('OPEN', 'IN_PROGRESS', 'RESOLVED', 'CLOSED'), nullable=False),
        sa.Column('visibility', _enum('PUBLIC', 'PRIVATE'), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('address', sa.String(length=300), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('state', sa.String(length=120), nullable=True),
        sa.Column('pincode', sa.String(length=20), nullable=True),
        sa.Column('reported_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('assigned_to_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('admin_notes', sa.String(length=2000), nullable=True),
        sa.Column('estimated_resolution_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_issues_title', 'issues', ['title'])
    op.create_index('ix_issues_category', 'issues', ['category'])
    op.create_index('ix_issues_status', 'issues', ['status'])
    op.create_index('ix_issues_visibility', 'issues', ['visibility'])
    op.create_index('ix_issues_reported_by_id', 'issues', ['reported_by_id'])
    op.create_index('ix_issues_assigned_to_id', 'issues', ['assigned_to_id'])
    op.create_index('ix_issues_created_at', 'issues', ['created_at'])
    op.create_index('ix_issues_lat_lng', 'issues', ['latitude', 'longitude'])

    op.create_table(
        'issue_images',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('filename', sa.String(length=500), nullable=False),
        sa.Column('original_name', sa.String(length=255), nullable=True),
        sa.Column('content_type', sa.String(length=100), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_issue_images_issue_id', 'issue_images', ['issue_id'])

    op.create_table(
        'issue_tags',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('tag', sa.String(length=50), nullable=False),
        sa.UniqueConstraint('issue_id', 'tag', name='uq_issue_tag'),
    )
    op.create_index('ix_issue_tags_issue_id', 'issue_tags', ['issue_id'])
    op.create_index('ix_issue_tags_tag', 'issue_tags', ['tag'])

    op.create_table(
        'issue_upvotes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('issue_id', 'user_id', name='uq_issue_upvote_user'),
    )
    op.create_index('ix_issue_upvotes_issue_id', 'issue_upvotes', ['issue_id'])
    op.create_index('ix_issue_upvotes_user', 'issue_upvotes', ['user_id'])

    op.create_table(
        'issue_comments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('issue_id', sa.Integer(), sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('body', sa.String(length=500), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('issue_id', 'seq', name='uq_issue_comment_seq'),
    )
    op.create_index('ix_issue_comments_issue_id', 'issue_comments', ['issue_id'])
    op.create_index('ix_issue_comments_user_id', 'issue_comments', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('issue_comments')
    op.drop_table('issue_upvotes')
    op.drop_table('issue_tags')
    op.drop_table('issue_images')
    op.drop_table('issues')
    op.drop_table('users')
