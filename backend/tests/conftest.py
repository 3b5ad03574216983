import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the backend root (containing the `subrisk` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from subrisk import create_app, db, socketio
from subrisk.services.territory.events import EventBroadcaster


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = 'DEBUG'
    CORS_ORIGINS = ['http://localhost:3000']
    MIN_TEAMS = 2
    MAX_TEAMS = 4
    MAX_PLAYERS_PER_TEAM = 5
    CONQUEST_LOCK_TIMEOUT_SEC = 5


class RecordingBroadcaster(EventBroadcaster):
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)


@pytest.fixture()
def flask_app():
    # No app context stays pushed here: requests would reuse it and share
    # ``g`` (and Flask-Login's cached user) across test clients
    application = create_app(TestConfig)
    with application.app_context():
        import subrisk.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def app_ctx(flask_app):
    """App context for tests that call services directly."""
    with flask_app.app_context():
        yield flask_app
        db.session.remove()


@pytest.fixture()
def file_db_app(tmp_path):
    """App on a file-backed SQLite database, for tests that use several threads."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'subrisk.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        import subrisk.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


def make_user(username, password='password'):
    from subrisk.models import User
    user = User(username=username)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def build_game(pub_names, edges, team_names=('Red', 'Blue'), start=True):
    """Create a game with one single-member team per name and the given graph.

    ``edges`` are pairs of pub names; adjacency is created through
    ``graph.add_pub`` so it is mirrored like any other setup.
    """
    from subrisk.services.territory import graph, lobby

    admin = make_user('admin')
    game = lobby.create_game(admin, 'Test crawl')

    teams = []
    members = []
    for i, team_name in enumerate(team_names):
        member = make_user(f'player{i + 1}')
        teams.append(lobby.create_team(game, member, team_name, f'#00000{i}'))
        members.append(member)

    pubs = {}
    for name in pub_names:
        neighbor_ids = []
        for a, b in edges:
            if a == name and b in pubs:
                neighbor_ids.append(pubs[b].id)
            elif b == name and a in pubs:
                neighbor_ids.append(pubs[a].id)
        pubs[name] = graph.add_pub(game, name, {'x': 0, 'y': 0}, neighbor_ids)

    if start:
        lobby.start_game(game, admin)

    return SimpleNamespace(
        game_id=game.id,
        admin_id=admin.id,
        team_ids=[t.id for t in teams],
        member_ids=[m.id for m in members],
        pub_ids={name: pub.id for name, pub in pubs.items()},
    )


@pytest.fixture()
def line_world(app_ctx):
    """Four pubs in a line A-B-C-D, two teams, game active."""
    return build_game(['A', 'B', 'C', 'D'], [('A', 'B'), ('B', 'C'), ('C', 'D')])


@pytest.fixture()
def triangle_world(app_ctx):
    """Three pubs, all pairwise adjacent, two teams, game active."""
    return build_game(['P1', 'P2', 'P3'], [('P1', 'P2'), ('P2', 'P3'), ('P1', 'P3')])


def conquer(world, team_index, pub_name, broadcaster=None):
    from subrisk.services.territory import engine
    return engine.attempt_conquest(
        world.game_id,
        world.team_ids[team_index],
        world.pub_ids[pub_name],
        world.member_ids[team_index],
        broadcaster=broadcaster,
    )


def login(http_client, username, password='password'):
    res = http_client.post('/login', json={'username': username, 'password': password})
    assert res.status_code == 200, res.get_json()
    return res


def register(http_client, username, password='password'):
    res = http_client.post('/register', json={'username': username, 'password': password})
    assert res.status_code == 201, res.get_json()
    return res.get_json()['user']


@pytest.fixture()
def sio_factory(flask_app):
    """Build Socket.IO test clients bound to an (optionally logged in) HTTP client."""
    created = []

    def _make(http_client=None):
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=http_client or flask_app.test_client(),
            namespace='/ws',
        )
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except RuntimeError:
            pass
