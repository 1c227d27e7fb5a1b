"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

Complete database schema - creates all tables from scratch.

Creates:
- Core tables: users, fish_species, locations, tackle_items, catches
- Competition tables: competitions, competition_participants, competition_invitations
- Social tables: friendships, notifications, push_tokens
- Scoring tables: leaderboard_cache, score_recompute_jobs
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables, constraints and indexes."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('state', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index('idx_users_state', 'users', ['state'])

    op.create_table(
        'fish_species',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('common_name', sa.String(), nullable=False),
        sa.Column('scientific_name', sa.String(), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('common_name'),
    )

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('state', sa.String(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'tackle_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('brand', sa.String(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('image_url', sa.String(1000), nullable=True),
        sa.Column('product_url', sa.String(1000), nullable=True),
        sa.Column('specifications', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_tackle_items_user', 'tackle_items', ['user_id'])

    op.create_table(
        'catches',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('fish_species_id', sa.Integer(), sa.ForeignKey('fish_species.id'), nullable=False),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('length', sa.Float(), nullable=True),
        sa.Column('tackle_item_id', sa.Integer(), sa.ForeignKey('tackle_items.id'), nullable=True),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('locations.id'), nullable=True),
        sa.Column('caught_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('weather', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('weight IS NULL OR (weight > 0 AND weight < 1000)', name='ck_catches_weight'),
        sa.CheckConstraint('length IS NULL OR (length > 0 AND length < 200)', name='ck_catches_length'),
        sa.CheckConstraint('points >= 0', name='ck_catches_points'),
    )
    op.create_index('idx_catches_user_caught_at', 'catches', ['user_id', 'caught_at'])
    op.create_index('idx_catches_species', 'catches', ['fish_species_id'])

    op.create_table(
        'competitions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('creator_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('metric', sa.String(20), nullable=False),
        sa.Column('target_species_id', sa.Integer(), sa.ForeignKey('fish_species.id'), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('max_participants', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('start_date < end_date', name='ck_competitions_window'),
        sa.CheckConstraint("type IN ('daily', 'weekly', 'monthly', 'yearly')", name='ck_competitions_type'),
        sa.CheckConstraint(
            "metric IN ('points', 'catches', 'weight', 'length')", name='ck_competitions_metric'
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'completed', 'cancelled')", name='ck_competitions_status'
        ),
        sa.CheckConstraint(
            'max_participants IS NULL OR max_participants > 0', name='ck_competitions_max_participants'
        ),
    )
    op.create_index('idx_competitions_status', 'competitions', ['status'])
    op.create_index('idx_competitions_start_date', 'competitions', ['start_date'])

    op.create_table(
        'competition_participants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            'competition_id', sa.Integer(), sa.ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('catch_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column(
            'best_catch_id', sa.Integer(), sa.ForeignKey('catches.id', ondelete='SET NULL'), nullable=True
        ),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'competition_id', 'user_id', name='uq_competition_participants_competition_user'
        ),
        sa.CheckConstraint('score >= 0', name='ck_competition_participants_score'),
        sa.CheckConstraint('catch_count >= 0', name='ck_competition_participants_catch_count'),
        sa.CheckConstraint('rank IS NULL OR rank > 0', name='ck_competition_participants_rank'),
    )
    op.create_index(
        'idx_competition_participants_competition', 'competition_participants', ['competition_id']
    )
    op.create_index('idx_competition_participants_user', 'competition_participants', ['user_id'])

    op.create_table(
        'competition_invitations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            'competition_id', sa.Integer(), sa.ForeignKey('competitions.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('inviter_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('invitee_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined')", name='ck_competition_invitations_status'
        ),
    )
    op.create_index(
        'uq_competition_invitations_pending',
        'competition_invitations',
        ['competition_id', 'invitee_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        'idx_competition_invitations_invitee_status', 'competition_invitations', ['invitee_id', 'status']
    )

    op.create_table(
        'friendships',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('friend_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'friend_id', name='uq_friendships_user_friend'),
        sa.CheckConstraint('user_id <> friend_id', name='ck_friendships_not_self'),
    )
    op.create_index('idx_friendships_friend_status', 'friendships', ['friend_id', 'status'])
    op.create_index('idx_friendships_user_status', 'friendships', ['user_id', 'status'])

    op.create_table(
        'leaderboard_cache',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('state', sa.String(), nullable=False, server_default=''),
        sa.Column('total_catches', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('biggest_fish_weight', sa.Float(), nullable=True),
        sa.Column('biggest_fish_length', sa.Float(), nullable=True),
        sa.Column('first_catch_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'state', name='uq_leaderboard_cache_user_state'),
        sa.CheckConstraint('total_catches >= 0', name='ck_leaderboard_cache_catches'),
        sa.CheckConstraint('total_points >= 0', name='ck_leaderboard_cache_points'),
    )
    op.create_index('idx_leaderboard_cache_state_points', 'leaderboard_cache', ['state', 'total_points'])

    score_job_status = sa.Enum(
        'pending', 'running', 'completed', 'failed', name='scorejobstatus'
    )
    op.create_table(
        'score_recompute_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_type', sa.String(), nullable=False),
        sa.Column(
            'competition_id', sa.Integer(), sa.ForeignKey('competitions.id', ondelete='CASCADE'), nullable=True
        ),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('status', score_job_status, nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_score_recompute_jobs_status', 'score_recompute_jobs', ['status'])
    op.create_index(
        'idx_score_recompute_jobs_key', 'score_recompute_jobs', ['job_type', 'competition_id', 'user_id']
    )
    op.create_index('idx_score_recompute_jobs_created_at', 'score_recompute_jobs', ['created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_notifications_user_unread', 'notifications', ['user_id', 'is_read', 'created_at'])

    op.create_table(
        'push_tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
    )
    op.create_index('idx_push_tokens_user', 'push_tokens', ['user_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('push_tokens')
    op.drop_table('notifications')
    op.drop_table('score_recompute_jobs')
    sa.Enum(name='scorejobstatus').drop(op.get_bind(), checkfirst=True)
    op.drop_table('leaderboard_cache')
    op.drop_table('friendships')
    op.drop_table('competition_invitations')
    op.drop_table('competition_participants')
    op.drop_table('competitions')
    op.drop_table('catches')
    op.drop_table('tackle_items')
    op.drop_table('locations')
    op.drop_table('fish_species')
    op.drop_table('users')
