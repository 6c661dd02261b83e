"""initial_schema

Revision ID: 3f9a1c7d2e4b
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7d2e4b'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles, galleries and drive_watch_channels tables."""
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('username', sa.String(64), nullable=False, unique=True),
        sa.Column('google_refresh_token_encrypted', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'galleries',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'user_id',
            sa.String(36),
            sa.ForeignKey('profiles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('drive_folder_id', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'slug', name='uq_galleries_user_slug'),
    )
    op.create_index('ix_galleries_drive_folder_id', 'galleries', ['drive_folder_id'])

    op.create_table(
        'drive_watch_channels',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(
            'user_id',
            sa.String(36),
            sa.ForeignKey('profiles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('folder_id', sa.String(128), nullable=False),
        sa.Column(
            'gallery_id',
            sa.String(36),
            sa.ForeignKey('galleries.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('channel_id', sa.String(255), nullable=False, unique=True),
        sa.Column('resource_id', sa.String(255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            'user_id', 'folder_id', name='uq_drive_watch_channels_user_folder'
        ),
    )
    op.create_index(
        'ix_drive_watch_channels_folder_id',
        'drive_watch_channels',
        ['folder_id'],
    )
    op.create_index(
        'ix_drive_watch_channels_expires_at',
        'drive_watch_channels',
        ['expires_at'],
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('ix_drive_watch_channels_expires_at', table_name='drive_watch_channels')
    op.drop_index('ix_drive_watch_channels_folder_id', table_name='drive_watch_channels')
    op.drop_table('drive_watch_channels')
    op.drop_index('ix_galleries_drive_folder_id', table_name='galleries')
    op.drop_table('galleries')
    op.drop_table('profiles')
