"""initial territory schema: user, game, team, pub, rosters, history, events

Revision ID: 4b7c1d2e9f10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7c1d2e9f10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='user'),
        sa.Column('games_won', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='setup'),
        sa.Column('winner_id', sa.Integer(), nullable=True),
        sa.Column('max_teams', sa.Integer(), nullable=False, server_default='4'),
        sa.Column('max_players_per_team', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_conquest_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )

    op.create_table(
        'team',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('color', sa.String(length=16), nullable=False, server_default='#FF5733'),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    # game.winner_id -> team.id closes the game/team cycle
    with op.batch_alter_table('game') as batch_op:
        batch_op.create_foreign_key('fk_game_winner_id', 'team', ['winner_id'], ['id'])

    op.create_table(
        'team_member',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('game_id', 'user_id', name='uq_team_member_game_user'),
    )

    op.create_table(
        'pub',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=True),
        sa.Column('x', sa.Float(), nullable=False, server_default='0'),
        sa.Column('y', sa.Float(), nullable=False, server_default='0'),
    )
    op.create_index('ix_pub_game_id', 'pub', ['game_id'])

    op.create_table(
        'team_pub',
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), primary_key=True),
        sa.Column('pub_id', sa.Integer(), sa.ForeignKey('pub.id'), primary_key=True, unique=True),
    )

    op.create_table(
        'pub_neighbor',
        sa.Column('pub_id', sa.Integer(), sa.ForeignKey('pub.id'), primary_key=True),
        sa.Column('neighbor_id', sa.Integer(), sa.ForeignKey('pub.id'), primary_key=True),
    )

    op.create_table(
        'conquest_record',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pub_id', sa.Integer(), sa.ForeignKey('pub.id'), nullable=False),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_conquest_record_pub_id', 'conquest_record', ['pub_id'])

    op.create_table(
        'game_event',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=True),
        sa.Column('pub_id', sa.Integer(), sa.ForeignKey('pub.id'), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
    )
    op.create_index('ix_game_event_game_id', 'game_event', ['game_id'])


def downgrade():
    op.drop_index('ix_game_event_game_id', table_name='game_event')
    op.drop_table('game_event')
    op.drop_index('ix_conquest_record_pub_id', table_name='conquest_record')
    op.drop_table('conquest_record')
    op.drop_table('pub_neighbor')
    op.drop_table('team_pub')
    op.drop_index('ix_pub_game_id', table_name='pub')
    op.drop_table('pub')
    op.drop_table('team_member')
    with op.batch_alter_table('game') as batch_op:
        batch_op.drop_constraint('fk_game_winner_id', type_='foreignkey')
    op.drop_table('team')
    op.drop_table('game')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
