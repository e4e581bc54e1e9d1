"""create game, turn, leaderboard_entry and saved_game tables

Revision ID: 1a7c9e2b4d10
Revises:
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c9e2b4d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'game' not in existing_tables:
        op.create_table(
            'game',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('host_id', sa.String(length=128), nullable=False),
            sa.Column('host_name', sa.String(length=64), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False),
            sa.Column('mode', sa.String(length=16), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
            sa.Column('ended_reason', sa.String(length=64), nullable=True),
            sa.Column('initial_prompt', sa.Text(), nullable=False),
            sa.Column('guide_prompt', sa.Text(), nullable=True),
            sa.Column('story_so_far', sa.Text(), nullable=False),
            sa.Column('last_turn', sa.JSON(), nullable=True),
            sa.Column('turns_count', sa.Integer(), nullable=False),
            sa.Column('max_turns', sa.Integer(), nullable=True),
            sa.Column('turn_duration_seconds', sa.Integer(), nullable=False),
            sa.Column('turn_deadline', sa.DateTime(), nullable=True),
            sa.Column('current_player_index', sa.Integer(), nullable=False),
            sa.Column('current_player', sa.String(length=64), nullable=True),
            sa.Column('current_player_id', sa.String(length=128), nullable=True),
            sa.Column('players', sa.JSON(), nullable=False),
            sa.Column('max_players', sa.Integer(), nullable=False),
            sa.Column('requires_approval', sa.Boolean(), nullable=False),
            sa.Column('pending_requests', sa.JSON(), nullable=False),
            sa.Column('scores', sa.JSON(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False),
        )
        op.create_index('ix_game_host_id', 'game', ['host_id'])
        op.create_index('ix_game_status', 'game', ['status'])
        op.create_index('ix_game_mode', 'game', ['mode'])
        op.create_index('ix_game_created_at', 'game', ['created_at'])

    if 'turn' not in existing_tables:
        op.create_table(
            'turn',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('game_id', sa.String(length=36), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('turn_order', sa.Integer(), nullable=False),
            sa.Column('player_id', sa.String(length=128), nullable=False),
            sa.Column('player_name', sa.String(length=64), nullable=False),
            sa.Column('text', sa.Text(), nullable=False),
            sa.Column('prompt_used', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('game_id', 'turn_order', name='uq_turn_game_order'),
        )
        op.create_index('ix_turn_game_id', 'turn', ['game_id'])

    if 'leaderboard_entry' not in existing_tables:
        op.create_table(
            'leaderboard_entry',
            sa.Column('user_id', sa.String(length=128), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('last_score', sa.Float(), nullable=False),
            sa.Column('top_score', sa.Float(), nullable=False),
            sa.Column('games_played', sa.Integer(), nullable=False),
            sa.Column('last_updated', sa.DateTime(), nullable=True),
            sa.Column('top_game_summary', sa.JSON(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False),
        )
        op.create_index('ix_leaderboard_entry_top_score', 'leaderboard_entry', ['top_score'])

    if 'saved_game' not in existing_tables:
        op.create_table(
            'saved_game',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.String(length=128), nullable=False),
            sa.Column('game_id', sa.String(length=36), nullable=False),
            sa.Column('player_name', sa.String(length=64), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('summary', sa.Text(), nullable=True),
            sa.Column('max_turns', sa.Integer(), nullable=True),
            sa.Column('turns', sa.JSON(), nullable=False),
            sa.Column('scores', sa.JSON(), nullable=True),
            sa.UniqueConstraint('user_id', 'game_id', name='uq_saved_game_user_game'),
        )
        op.create_index('ix_saved_game_user_id', 'saved_game', ['user_id'])


def downgrade():
    op.drop_index('ix_saved_game_user_id', table_name='saved_game')
    op.drop_table('saved_game')
    op.drop_index('ix_leaderboard_entry_top_score', table_name='leaderboard_entry')
    op.drop_table('leaderboard_entry')
    op.drop_index('ix_turn_game_id', table_name='turn')
    op.drop_table('turn')
    op.drop_index('ix_game_created_at', table_name='game')
    op.drop_index('ix_game_mode', table_name='game')
    op.drop_index('ix_game_status', table_name='game')
    op.drop_index('ix_game_host_id', table_name='game')
    op.drop_table('game')
