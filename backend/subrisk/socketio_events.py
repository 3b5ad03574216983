from dataclasses import dataclass, field
from functools import wraps
from typing import Dict, Optional, Set

from flask import current_app, request
from flask_login import current_user
from flask_socketio import join_room, leave_room, emit

from subrisk import socketio, db
from subrisk.errors import NotFoundError, SubRiskError, ValidationError
from subrisk.models import Game, User, utcnow
from subrisk.services.territory import engine, graph, lobby
from subrisk.services.territory.events import SocketIOBroadcaster, room_for

NAMESPACE = '/ws'


@dataclass
class ConnectionContext:
    """Who is behind one socket connection and which game rooms it joined."""
    sid: str
    user_id: int
    username: str
    games: Set[int] = field(default_factory=set)


class ConnectionRegistry:
    def __init__(self):
        self._by_sid: Dict[str, ConnectionContext] = {}

    def open(self, sid: str, user: User) -> ConnectionContext:
        ctx = ConnectionContext(sid=sid, user_id=user.id, username=user.username)
        self._by_sid[sid] = ctx
        return ctx

    def get(self, sid: str) -> Optional[ConnectionContext]:
        return self._by_sid.get(sid)

    def close(self, sid: str) -> Optional[ConnectionContext]:
        return self._by_sid.pop(sid, None)

    def __len__(self):
        return len(self._by_sid)


connections = ConnectionRegistry()


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def with_context(handler):
    """Resolve the caller's ConnectionContext and report domain errors to it."""
    @wraps(handler)
    def wrapper(data=None):
        ctx = connections.get(_get_sid())
        if ctx is None:
            emit('error', {'message': 'Not connected'})
            return
        try:
            return handler(ctx, data or {})
        except SubRiskError as exc:
            emit('error', {'message': exc.message, 'code': exc.status_code})
    return wrapper


def _game_from(data) -> Game:
    try:
        game_id = int(data.get('game_id'))
    except (TypeError, ValueError):
        raise ValidationError('game_id is required')
    game = db.session.get(Game, game_id)
    if game is None:
        raise NotFoundError(f'Game not found with ID: {game_id}')
    return game


def handle_connect(auth=None):
    if not current_user.is_authenticated:
        current_app.logger.info("[socket-reject] unauthenticated connection")
        return False
    ctx = connections.open(_get_sid(), current_user)
    current_app.logger.info(f"[socket-connect] user={ctx.user_id} sid={ctx.sid}")
    emit('connected', {'message': f'Connected to {NAMESPACE}', 'user_id': ctx.user_id})


def handle_disconnect(*args):
    ctx = connections.close(_get_sid())
    if ctx:
        current_app.logger.info(f"[socket-disconnect] user={ctx.user_id} sid={ctx.sid}")


@with_context
def handle_join_game(ctx: ConnectionContext, data):
    game = _game_from(data)
    room = room_for(game.id)
    join_room(room)
    ctx.games.add(game.id)
    current_app.logger.info(f"[socket-join] user={ctx.user_id} game={game.id}")
    emit('user_joined', {'userId': ctx.user_id, 'username': ctx.username}, to=room, include_self=False)
    emit('game_state', graph.game_snapshot(game))


@with_context
def handle_leave_game(ctx: ConnectionContext, data):
    game = _game_from(data)
    room = room_for(game.id)
    leave_room(room)
    ctx.games.discard(game.id)
    emit('user_left', {'userId': ctx.user_id, 'username': ctx.username}, to=room)
    emit('left', {'room': room})


@with_context
def handle_conquer_pub(ctx: ConnectionContext, data):
    game = _game_from(data)
    try:
        pub_id = int(data.get('pub_id'))
    except (TypeError, ValueError):
        raise ValidationError('pub_id is required')
    user = db.session.get(User, ctx.user_id)
    team = lobby.team_for_user(game, user)
    if team is None:
        raise ValidationError('You must be in a team to conquer pubs')

    outcome = engine.attempt_conquest(game.id, team.id, pub_id, ctx.user_id, broadcaster=SocketIOBroadcaster(NAMESPACE))
    if outcome.denial is not None:
        emit('conquest_denied', {
            'game_id': outcome.game_id,
            'pub_id': outcome.pub_id,
            'reason': outcome.denial.value,
            'message': outcome.denial.message,
        })


@with_context
def handle_send_message(ctx: ConnectionContext, data):
    game = _game_from(data)
    message = (data.get('message') or '').strip()
    if not message:
        raise ValidationError('message is required')
    user = db.session.get(User, ctx.user_id)
    team = lobby.team_for_user(game, user)
    socketio.emit('chat_message', {
        'userId': ctx.user_id,
        'username': ctx.username,
        'teamName': team.name if team else 'Spectator',
        'teamColor': team.color if team else '#999999',
        'message': message,
        'timestamp': utcnow().isoformat(),
    }, to=room_for(game.id), namespace=NAMESPACE)


def handle_ping(data=None):
    emit('pong', data or {})


def handle_unexpected_error(exc):
    current_app.logger.exception(f"[socket-error] sid={_get_sid()} error={exc}")
    db.session.rollback()
    emit('error', {'message': 'Something went wrong'})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_game', handle_join_game, namespace=NAMESPACE)
    socketio.on_event('leave_game', handle_leave_game, namespace=NAMESPACE)
    socketio.on_event('conquer_pub', handle_conquer_pub, namespace=NAMESPACE)
    socketio.on_event('send_message', handle_send_message, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
    socketio.on_error_default(handle_unexpected_error)
