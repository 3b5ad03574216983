from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from subrisk import db
from subrisk.errors import NotFoundError, ValidationError
from subrisk.models import Game, Team
from subrisk.services.territory import engine, graph, lobby
from subrisk.services.territory.events import SocketIOBroadcaster


games = Blueprint('games', __name__)


def _get_game(game_id: int) -> Game:
    game = db.session.get(Game, game_id)
    if game is None:
        raise NotFoundError('Game not found')
    return game


@games.route('', methods=['POST'])
@login_required
def create_game():
    data = request.get_json(silent=True) or {}
    game = lobby.create_game(current_user, data.get('name'), data.get('settings'))
    return jsonify(game.to_dict()), 201


@games.route('', methods=['GET'])
@login_required
def list_games():
    all_games = Game.query.order_by(Game.created_at.desc(), Game.id.desc()).all()
    return jsonify([g.to_dict() for g in all_games])


@games.route('/<int:game_id>', methods=['GET'])
@login_required
def get_game(game_id):
    game = _get_game(game_id)
    payload = game.to_dict(include_teams=False)
    payload['teams'] = [t.to_dict() for t in game.teams]
    payload['pubs'] = [p.to_dict() for p in game.pubs]
    return jsonify(payload)


@games.route('/<int:game_id>', methods=['PUT'])
@login_required
def update_game(game_id):
    game = _get_game(game_id)
    data = request.get_json(silent=True) or {}
    if 'status' in data:
        raise ValidationError('Status changes through /start only')
    game = lobby.update_game(game, current_user, data.get('name'), data.get('settings'))
    return jsonify(game.to_dict())


@games.route('/<int:game_id>/teams', methods=['POST'])
@login_required
def create_team(game_id):
    game = _get_game(game_id)
    data = request.get_json(silent=True) or {}
    team = lobby.create_team(game, current_user, data.get('name'), data.get('color'))
    return jsonify(team.to_dict()), 201


@games.route('/<int:game_id>/pubs', methods=['POST'])
@login_required
def add_pub(game_id):
    game = _get_game(game_id)
    lobby.ensure_admin(game, current_user)
    data = request.get_json(silent=True) or {}
    neighbors = data.get('neighbors') or []
    if not isinstance(neighbors, list):
        raise ValidationError('neighbors must be a list of pub ids')
    try:
        neighbor_ids = [int(n) for n in neighbors]
    except (TypeError, ValueError):
        raise ValidationError('neighbors must be a list of pub ids')
    pub = graph.add_pub(game, data.get('name'), data.get('position'), neighbor_ids)
    return jsonify(pub.to_dict()), 201


@games.route('/<int:game_id>/join/<int:team_id>', methods=['POST'])
@login_required
def join_team(game_id, team_id):
    game = _get_game(game_id)
    team = db.session.get(Team, team_id)
    if team is None:
        raise NotFoundError('Team not found')
    team = lobby.join_team(game, team, current_user)
    return jsonify(team.to_dict())


@games.route('/<int:game_id>/start', methods=['POST'])
@login_required
def start_game(game_id):
    game = _get_game(game_id)
    game = lobby.start_game(game, current_user)
    return jsonify(game.to_dict())


@games.route('/<int:game_id>/state', methods=['GET'])
@login_required
def get_game_state(game_id):
    game = _get_game(game_id)
    return jsonify(graph.game_snapshot(game))


@games.route('/<int:game_id>/events', methods=['GET'])
@login_required
def get_game_events(game_id):
    game = _get_game(game_id)
    return jsonify([e.to_dict() for e in game.events])


@games.route('/<int:game_id>/conquer', methods=['POST'])
@login_required
def conquer_pub(game_id):
    game = _get_game(game_id)
    data = request.get_json(silent=True) or {}
    try:
        pub_id = int(data.get('pub_id'))
    except (TypeError, ValueError):
        raise ValidationError('pub_id is required')

    team = lobby.team_for_user(game, current_user)
    if team is None:
        raise ValidationError('You are not in a team for this game')

    outcome = engine.attempt_conquest(
        game.id, team.id, pub_id, current_user.id,
        broadcaster=SocketIOBroadcaster(),
    )
    payload = outcome.to_dict()
    if outcome.denial is not None:
        payload['error'] = outcome.denial.message
        return jsonify(payload), 409
    current_app.logger.debug(f"[conquer-http] game={game.id} pub={pub_id} user={current_user.id}")
    return jsonify(payload)
