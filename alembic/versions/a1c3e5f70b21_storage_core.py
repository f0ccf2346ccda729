"""storage core schema

Revision ID: a1c3e5f70b21
Revises:
Create Date: 2026-10-19 09:12:44.301552

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f70b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCOPE_CHECK = (
    "(owner_id IS NOT NULL AND group_folder_id IS NULL) OR "
    "(owner_id IS NULL AND group_folder_id IS NOT NULL)"
)


def upgrade() -> None:
    op.create_table('users',
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
        sa.UniqueConstraint('username')
    )

    op.create_table('groups',
        sa.Column('group_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('group_id')
    )

    op.create_table('group_members',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('group_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['group_id'], ['groups.group_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'user_id', name='unique_group_member')
    )
    op.create_index('idx_group_members_user', 'group_members', ['user_id'])

    op.create_table('group_folders',
        sa.Column('group_folder_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('group_folder_id')
    )

    op.create_table('group_folder_access',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('group_folder_id', sa.String(36), nullable=False),
        sa.Column('group_id', sa.String(36), nullable=False),
        sa.Column('can_write', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['group_folder_id'], ['group_folders.group_folder_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.group_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_folder_id', 'group_id', name='unique_group_folder_group')
    )

    op.create_table('folders',
        sa.Column('folder_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('owner_id', sa.String(36), nullable=True),
        sa.Column('group_folder_id', sa.String(36), nullable=True),
        sa.Column('parent_id', sa.String(36), nullable=True),
        sa.Column('is_vault', sa.Boolean(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('envelope_cipher', sa.Text(), nullable=True),
        sa.Column('envelope_iv', sa.Text(), nullable=True),
        sa.Column('envelope_salt', sa.String(64), nullable=True),
        sa.Column('scope_key', sa.String(64), nullable=False),
        sa.Column('parent_key', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['owner_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['group_folder_id'], ['group_folders.group_folder_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['folders.folder_id'], ),
        sa.CheckConstraint(SCOPE_CHECK, name='ck_folders_single_scope'),
        sa.PrimaryKeyConstraint('folder_id')
    )
    op.create_index('idx_folders_parent', 'folders', ['parent_id'])
    op.create_index('idx_folders_scope', 'folders', ['scope_key'])
    op.create_index('uq_folders_live_sibling_name', 'folders', ['scope_key', 'parent_key', 'name'], unique=True,
                    sqlite_where=sa.text('is_deleted = 0'), postgresql_where=sa.text('is_deleted = false'))

    op.create_table('files',
        sa.Column('file_id', sa.String(36), nullable=False),
        sa.Column('path', sa.String(1024), nullable=False),
        sa.Column('owner_id', sa.String(36), nullable=True),
        sa.Column('group_folder_id', sa.String(36), nullable=True),
        sa.Column('folder_id', sa.String(36), nullable=True),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('mime', sa.String(128), nullable=False),
        sa.Column('hash', sa.String(128), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('is_vault', sa.Boolean(), nullable=False),
        sa.Column('storage_path', sa.Text(), nullable=True),
        sa.Column('iv', sa.Text(), nullable=True),
        sa.Column('original_name', sa.Text(), nullable=True),
        sa.Column('scope_key', sa.String(64), nullable=False),
        sa.Column('parent_key', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['owner_id'], ['users.user_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['group_folder_id'], ['group_folders.group_folder_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['folder_id'], ['folders.folder_id'], ),
        sa.CheckConstraint(SCOPE_CHECK, name='ck_files_single_scope'),
        sa.PrimaryKeyConstraint('file_id')
    )
    op.create_index('idx_files_folder', 'files', ['folder_id'])
    op.create_index('idx_files_scope', 'files', ['scope_key'])
    op.create_index('uq_files_live_sibling_path', 'files', ['scope_key', 'parent_key', 'path'], unique=True,
                    sqlite_where=sa.text('is_deleted = 0'), postgresql_where=sa.text('is_deleted = false'))

    op.create_table('content_blobs',
        sa.Column('blob_id', sa.String(36), nullable=False),
        sa.Column('hash', sa.String(128), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('storage_ref', sa.Text(), nullable=False),
        sa.Column('ref_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('blob_id'),
        sa.UniqueConstraint('hash')
    )

    op.create_table('file_versions',
        sa.Column('version_id', sa.String(36), nullable=False),
        sa.Column('file_id', sa.String(36), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('mime', sa.String(128), nullable=True),
        sa.Column('hash', sa.String(128), nullable=False),
        sa.Column('is_snapshot', sa.Boolean(), nullable=False),
        sa.Column('blob_id', sa.String(36), nullable=True),
        sa.Column('base_version_id', sa.String(36), nullable=True),
        sa.Column('delta', sa.LargeBinary(), nullable=True),
        sa.Column('delta_size', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['file_id'], ['files.file_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['blob_id'], ['content_blobs.blob_id'], ),
        sa.ForeignKeyConstraint(['base_version_id'], ['file_versions.version_id'], ),
        sa.PrimaryKeyConstraint('version_id'),
        sa.UniqueConstraint('file_id', 'version', name='unique_file_version')
    )
    op.create_index('idx_file_versions_file', 'file_versions', ['file_id', 'version'])

    op.create_table('sync_journal',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.String(36), nullable=True),
        sa.Column('group_folder_id', sa.String(36), nullable=True),
        sa.Column('entity_type', sa.String(32), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('action', sa.String(32), nullable=False),
        sa.Column('version_id', sa.String(36), nullable=True),
        sa.Column('base_version_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_journal_owner_cursor', 'sync_journal', ['owner_id', 'id'])
    op.create_index('idx_journal_group_cursor', 'sync_journal', ['group_folder_id', 'id'])


def downgrade() -> None:
    op.drop_table('sync_journal')
    op.drop_table('file_versions')
    op.drop_table('content_blobs')
    op.drop_table('files')
    op.drop_table('folders')
    op.drop_table('group_folder_access')
    op.drop_table('group_folders')
    op.drop_table('group_members')
    op.drop_table('groups')
    op.drop_table('users')
