from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:8081",
    "http://127.0.0.1:8081",
    "http://localhost:19006",
    "http://127.0.0.1:19006",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from quizduel.errors import register_error_handlers
    register_error_handlers(flask_app)

    # Bearer token identity (request_loader + JSON 401)
    from quizduel import auth  # noqa: F401

    from quizduel.main import main
    flask_app.register_blueprint(main)

    from quizduel.api.matches import matches
    flask_app.register_blueprint(matches, url_prefix='/api/match')

    from quizduel.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from quizduel.services.questions.generator import QuestionGenerator
    flask_app.extensions['question_generator'] = QuestionGenerator.from_config(flask_app.config)

    from quizduel.services.matches.scheduler import engine
    engine.init_app(flask_app)
    if flask_app.config.get('ENGINE_AUTOSTART'):
        engine.start()

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates the match tables."""
        import quizduel.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            click.echo('Database has been reset!')

    @click.command('engine-tick')
    def engine_tick_command():
        """Runs a single scheduler tick and prints the outcome counts."""
        outcomes = engine.tick()
        if outcomes is None:
            click.echo('Tick skipped: another tick is still running.')
            return
        click.echo(', '.join(f'{k}={v}' for k, v in sorted(outcomes.items())) or 'nothing to do')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(engine_tick_command)

    return flask_app
