"""create_friend_requests_and_profiles

Revision ID: 7c1e4b2a9d30
Revises:
Create Date: 2026-10-19 10:12:44.218305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c1e4b2a9d30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.String(length=1000), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
    )

    op.create_table(
        'friend_requests',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('sender_id', sa.String(length=255), nullable=False),
        sa.Column('receiver_id', sa.String(length=255), nullable=False),
        sa.Column('pair_key', sa.String(length=520), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('sender_id <> receiver_id', name='ck_friend_requests_not_self'),
    )
    op.create_index('ix_friend_requests_sender_id', 'friend_requests', ['sender_id'])
    op.create_index('ix_friend_requests_receiver_id', 'friend_requests', ['receiver_id'])
    op.create_index('ix_friend_requests_pair_key', 'friend_requests', ['pair_key'])

    # Linearization point for concurrent sends on the same pair
    op.create_index(
        'uq_friend_requests_active_pair',
        'friend_requests',
        ['pair_key'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'accepted')"),
    )


def downgrade() -> None:
    op.drop_index('uq_friend_requests_active_pair', table_name='friend_requests')
    op.drop_index('ix_friend_requests_pair_key', table_name='friend_requests')
    op.drop_index('ix_friend_requests_receiver_id', table_name='friend_requests')
    op.drop_index('ix_friend_requests_sender_id', table_name='friend_requests')
    op.drop_table('friend_requests')
    op.drop_table('profiles')
