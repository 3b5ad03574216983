import logging

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from subrisk.main import main
    flask_app.register_blueprint(main)

    from subrisk.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from subrisk.errors import SubRiskError

    @flask_app.errorhandler(SubRiskError)
    def handle_subrisk_error(exc):
        return jsonify({'error': exc.message}), exc.status_code

    from subrisk.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from subrisk.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with users and a demo game."""
        from subrisk.services.territory import lobby, graph
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            users = []
            for u in ['testuser1', 'testuser2', 'testuser3']:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)
                users.append(user)
            db.session.commit()

            game = lobby.create_game(users[0], 'Demo crawl')
            red = lobby.create_team(game, users[1], 'Red Lions', '#C0392B')
            blue = lobby.create_team(game, users[2], 'Blue Anchors', '#2E86C1')
            previous = None
            for i, name in enumerate(['The Crown', 'The Anchor', 'The Swan', 'The Plough']):
                pub = graph.add_pub(game, name, {'x': i * 100, 'y': 0}, [previous.id] if previous else [])
                previous = pub
            print(f'Database has been reset and seeded! Demo game id={game.id} teams={red.id},{blue.id}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
