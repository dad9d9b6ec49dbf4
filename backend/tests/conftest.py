import os
import sys
import pytest
from flask import g
from flask.testing import FlaskClient

# Ensure the backend root (containing the `quizduel` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from jose import jwt

from quizduel import create_app, db, socketio
from quizduel.services.questions.generator import GeneratedQuestion


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET = 'test-jwt-secret'
    JWT_ALGORITHM = 'HS256'
    TICK_INTERVAL_SEC = 1.0
    START_COUNTDOWN_SEC = 0
    OPTION_COUNT = 4
    MAX_TOTAL_QUESTIONS = 20
    MAX_QUESTION_DURATION_SEC = 120
    DIFFICULTIES = ('easy', 'medium', 'hard')
    QUESTION_GENERATOR_URL = 'http://generator.test/models/{model}:generateContent'
    QUESTION_GENERATOR_API_KEY = 'test-key'
    QUESTION_GENERATOR_MODEL = 'test-model'
    QUESTION_GENERATOR_TIMEOUT_SEC = 5
    ENGINE_AUTOSTART = False
    NOTIFY_MATCH_UPDATES = True


class PerRequestLoginClient(FlaskClient):
    """Test client that resolves the caller again on every request.

    The fixture keeps one app context open for the whole test, and requests
    reuse it, so the user Flask-Login cached on `g` must not carry over.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


class FakeQuestionGenerator:
    """Deterministic batches: the correct option of question i is i % 4."""

    def __init__(self):
        self.calls = []
        self.error = None

    def generate(self, topic, count, difficulty):
        self.calls.append((topic, count, difficulty))
        if self.error is not None:
            raise self.error
        return [
            GeneratedQuestion.model_validate({
                'question': f'{topic} question {i + 1}',
                'options': [{'index': j, 'option': f'Option {j}'} for j in range(4)],
                'answer': i % 4,
            })
            for i in range(count)
        ]


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    application.test_client_class = PerRequestLoginClient
    application.extensions['question_generator'] = FakeQuestionGenerator()
    with application.app_context():
        # Ensure models are imported so tables are created
        import quizduel.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def generator(flask_app):
    return flask_app.extensions['question_generator']


@pytest.fixture()
def auth_headers():
    def make(user_id):
        token = jwt.encode({'id': user_id}, TestConfig.JWT_SECRET, algorithm=TestConfig.JWT_ALGORITHM)
        return {'Authorization': f'Bearer {token}'}
    return make


@pytest.fixture()
def match_payload():
    return {
        'time_per_question': 5,
        'category': 'Geography',
        'total_questions': 3,
        'stake_amount': 10,
        'difficulty': 'easy',
    }


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def live_match(flask_app, match_payload):
    """Factory for an active match between p1 and p2 whose first question went live at `now`."""
    from quizduel.services.matches.lifecycle import create_match, join_match, start_match
    from quizduel.services.matches.scheduler import engine

    def make(now, total_questions=3, duration=5):
        payload = dict(match_payload, total_questions=total_questions, time_per_question=duration)
        match_id = create_match('p1', payload).id
        join_match(match_id, 'p2')
        start_match(match_id, 'p1', now=now)
        engine.tick(now=now)
        return match_id
    return make
