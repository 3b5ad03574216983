from datetime import datetime, timezone

from subrisk import db, bcrypt
from flask_login import UserMixin


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(16), nullable=False, default='user')
    games_won = db.Column(db.Integer, nullable=False, default=0)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'role': self.role,
            'games_won': self.games_won or 0,
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    admin_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='setup')  # setup, active, completed
    winner_id = db.Column(db.Integer, db.ForeignKey('team.id', name='fk_game_winner_id', use_alter=True), nullable=True)
    # Settings
    max_teams = db.Column(db.Integer, nullable=False, default=4)
    max_players_per_team = db.Column(db.Integer, nullable=False, default=5)
    start_time = db.Column(db.DateTime, nullable=True)
    end_time = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_conquest_at = db.Column(db.DateTime, nullable=True)
    # Bumped on every UPDATE of the row; a stale concurrent writer fails its flush
    version = db.Column(db.Integer, nullable=False, default=1)

    admin = db.relationship('User', foreign_keys=[admin_id])
    teams = db.relationship('Team', back_populates='game', foreign_keys='Team.game_id', order_by='Team.id')
    winner = db.relationship('Team', foreign_keys=[winner_id], post_update=True)
    pubs = db.relationship('Pub', back_populates='game', order_by='Pub.id')
    events = db.relationship('GameEvent', back_populates='game', order_by='GameEvent.id')

    __mapper_args__ = {'version_id_col': version}

    def settings_dict(self):
        return {
            'max_teams': self.max_teams,
            'max_players_per_team': self.max_players_per_team,
            'start_time': _iso(self.start_time),
            'end_time': _iso(self.end_time),
        }

    def to_dict(self, include_teams=True):
        data = {
            'id': self.id,
            'name': self.name,
            'admin_id': self.admin_id,
            'status': self.status,
            'winner_id': self.winner_id,
            'settings': self.settings_dict(),
            'created_at': _iso(self.created_at),
        }
        if include_teams:
            data['teams'] = [{'id': t.id, 'name': t.name, 'color': t.color} for t in self.teams]
        return data


team_pub = db.Table(
    'team_pub',
    db.Column('team_id', db.Integer, db.ForeignKey('team.id'), primary_key=True),
    # A pub appears in at most one roster
    db.Column('pub_id', db.Integer, db.ForeignKey('pub.id'), primary_key=True, unique=True),
)

pub_neighbor = db.Table(
    'pub_neighbor',
    db.Column('pub_id', db.Integer, db.ForeignKey('pub.id'), primary_key=True),
    db.Column('neighbor_id', db.Integer, db.ForeignKey('pub.id'), primary_key=True),
)


class Team(db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(16), nullable=False, default='#FF5733')
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    game = db.relationship('Game', back_populates='teams', foreign_keys=[game_id])
    memberships = db.relationship('TeamMember', back_populates='team', order_by='TeamMember.id')
    pubs = db.relationship('Pub', secondary=team_pub, order_by='Pub.id')

    @property
    def members(self):
        return [m.user for m in self.memberships]

    @property
    def pub_ids(self):
        return [p.id for p in self.pubs]

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'game_id': self.game_id,
            'members': [{'id': u.id, 'username': u.username} for u in self.members],
            'pubs': self.pub_ids,
        }


class TeamMember(db.Model):
    __tablename__ = 'team_member'
    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False)
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    team = db.relationship('Team', back_populates='memberships')
    user = db.relationship('User')

    __table_args__ = (db.UniqueConstraint('game_id', 'user_id', name='uq_team_member_game_user'),)


class Pub(db.Model):
    __tablename__ = 'pub'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    x = db.Column(db.Float, nullable=False, default=0)
    y = db.Column(db.Float, nullable=False, default=0)

    game = db.relationship('Game', back_populates='pubs')
    owner = db.relationship('Team', foreign_keys=[owner_id])
    neighbors = db.relationship(
        'Pub',
        secondary=pub_neighbor,
        primaryjoin=(id == pub_neighbor.c.pub_id),
        secondaryjoin=(id == pub_neighbor.c.neighbor_id),
        order_by='Pub.id',
    )
    conquest_history = db.relationship('ConquestRecord', back_populates='pub', order_by='ConquestRecord.id')

    @property
    def neighbor_ids(self):
        return [n.id for n in self.neighbors]

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'game_id': self.game_id,
            'owner': self.owner_id,
            'neighbors': self.neighbor_ids,
            'position': {'x': self.x, 'y': self.y},
        }


class ConquestRecord(db.Model):
    __tablename__ = 'conquest_record'
    id = db.Column(db.Integer, primary_key=True)
    pub_id = db.Column(db.Integer, db.ForeignKey('pub.id'), nullable=False, index=True)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)

    pub = db.relationship('Pub', back_populates='conquest_history')

    def to_dict(self):
        return {'team': self.team_id, 'timestamp': _iso(self.timestamp)}


class GameEvent(db.Model):
    __tablename__ = 'game_event'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)  # conquest, team_join, game_start, game_end
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    pub_id = db.Column(db.Integer, db.ForeignKey('pub.id'), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    message = db.Column(db.Text, nullable=True)

    game = db.relationship('Game', back_populates='events')

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.kind,
            'team': self.team_id,
            'pub': self.pub_id,
            'user': self.user_id,
            'timestamp': _iso(self.timestamp),
            'message': self.message,
        }
