"""Game setup: games, teams, membership and the setup -> active transition."""

from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from subrisk import db
from subrisk.errors import PermissionDenied, ValidationError
from subrisk.models import Game, GameEvent, Team, TeamMember, User, utcnow
from subrisk.services.territory.locks import serialized


def _parse_cap(value, label: str) -> int:
    try:
        cap = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be a number')
    if cap < 1:
        raise ValidationError(f'{label} must be at least 1')
    return cap


def _apply_settings(game: Game, settings: Optional[dict]) -> None:
    settings = settings or {}
    if 'max_teams' in settings:
        game.max_teams = _parse_cap(settings['max_teams'], 'max_teams')
    if 'max_players_per_team' in settings:
        game.max_players_per_team = _parse_cap(settings['max_players_per_team'], 'max_players_per_team')


def ensure_admin(game: Game, user: User) -> None:
    if game.admin_id != user.id and not user.is_admin:
        raise PermissionDenied('Not authorized')


def create_game(admin: User, name: str, settings: Optional[dict] = None) -> Game:
    if not name or not str(name).strip():
        raise ValidationError('Game name is required')
    cfg = current_app.config
    game = Game(
        name=str(name).strip(),
        admin_id=admin.id,
        status='setup',
        max_teams=int(cfg.get('MAX_TEAMS', 4)),
        max_players_per_team=int(cfg.get('MAX_PLAYERS_PER_TEAM', 5)),
    )
    _apply_settings(game, settings)
    db.session.add(game)
    db.session.commit()
    current_app.logger.info(f"[game-create] game={game.id} admin={admin.id}")
    return game


def update_game(game: Game, user: User, name: Optional[str] = None, settings: Optional[dict] = None) -> Game:
    """Rename a game or change its caps. Status only moves through start_game."""
    ensure_admin(game, user)
    if name:
        game.name = str(name).strip()
    if settings:
        if game.status != 'setup':
            raise ValidationError('Settings can only change while the game is in setup')
        _apply_settings(game, settings)
    db.session.commit()
    return game


def team_for_user(game: Game, user: User) -> Optional[Team]:
    membership = TeamMember.query.filter_by(game_id=game.id, user_id=user.id).first()
    return membership.team if membership else None


def create_team(game: Game, user: User, name: str, color: Optional[str] = None) -> Team:
    """Create a team in ``game`` with ``user`` as its first member."""
    if not name or not str(name).strip():
        raise ValidationError('Team name is required')

    with serialized(game.id):
        # Caps and status must be read from what is committed now
        db.session.expire_all()
        if game.status != 'setup':
            raise ValidationError('Cannot add teams after game has started')
        if len(game.teams) >= game.max_teams:
            raise ValidationError('Maximum number of teams reached')
        if team_for_user(game, user) is not None:
            raise ValidationError('Already in a team for this game')

        team = Team(name=str(name).strip(), game=game)
        if color:
            team.color = color
        db.session.add(team)
        try:
            db.session.flush()
            db.session.add(TeamMember(team=team, user_id=user.id, game_id=game.id))
            db.session.add(GameEvent(game_id=game.id, kind='team_join', team_id=team.id, user_id=user.id,
                                     message=f"{user.username} created team {team.name}"))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError('Already in a team for this game')
    current_app.logger.info(f"[team-create] game={game.id} team={team.id} user={user.id}")
    return team


def join_team(game: Game, team: Team, user: User) -> Team:
    if team.game_id != game.id:
        raise ValidationError('Team does not belong to this game')

    with serialized(game.id):
        db.session.expire_all()
        if game.status != 'setup':
            raise ValidationError('Teams can only be joined while the game is in setup')
        if team_for_user(game, user) is not None:
            raise ValidationError('Already in a team for this game')
        if len(team.memberships) >= game.max_players_per_team:
            raise ValidationError('Team is full')

        try:
            db.session.add(TeamMember(team=team, user_id=user.id, game_id=game.id))
            db.session.add(GameEvent(game_id=game.id, kind='team_join', team_id=team.id, user_id=user.id,
                                     message=f"{user.username} joined team {team.name}"))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError('Already in a team for this game')
    current_app.logger.info(f"[team-join] game={game.id} team={team.id} user={user.id}")
    return team


def start_game(game: Game, user: User) -> Game:
    ensure_admin(game, user)
    with serialized(game.id):
        db.session.expire_all()
        if game.status != 'setup':
            raise ValidationError('Game has already started or ended')
        min_teams = int(current_app.config.get('MIN_TEAMS', 2))
        if len(game.teams) < min_teams:
            raise ValidationError(f'Need at least {min_teams} teams to start a game')

        game.status = 'active'
        game.start_time = utcnow()
        db.session.add(GameEvent(game_id=game.id, kind='game_start', user_id=user.id,
                                 message=f"Game {game.name} started"))
        db.session.commit()
    current_app.logger.info(f"[game-start] game={game.id} teams={[t.id for t in game.teams]}")
    return game
