import os
import sys
from types import SimpleNamespace

import pytest

# Ensure the backend root (containing the `quizroom` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from quizroom import create_app, db
from quizroom.client.api import RoomApiClient


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ROOM_CODE_ATTEMPTS = 24
    MIN_PLAYERS = 1
    PLAYER_POLL_INTERVAL_SEC = 0.01
    HOST_POLL_INTERVAL_SEC = 0.01
    CORS_ORIGINS = []


DEFAULT_QUESTIONS = {
    'qa': [
        {'text': 'Capital of France?', 'answer': 'Paris'},
        {'text': 'Capital of Japan?', 'answer': 'Tokyo'},
        {'text': 'Capital of Italy?', 'answer': 'Rome'},
    ],
    'true_false': [
        {'text': 'Berlin is the capital of Germany.', 'answer': 'Wahr'},
        {'text': 'The moon is made of cheese.', 'answer': 'Lüge'},
    ],
    'identify_image': [
        {'text': 'Who is this?', 'answer': 'Ada Lovelace', 'image_path': 'people/ada.jpg'},
        {'text': 'What is this?', 'answer': 'Tower Bridge', 'image_path': 'places/bridge.jpg'},
    ],
    'blind_top5': [
        {'text': 'Nile'},
        {'text': 'Amazon'},
        {'text': 'Yangtze'},
        {'text': 'Mississippi'},
        {'text': 'Yenisei'},
    ],
}
DEFAULT_QUESTIONS['blind_top5_unscored'] = DEFAULT_QUESTIONS['blind_top5']


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        if self._payload is None:
            raise ValueError('No JSON body')
        return self._payload


class FlaskSession:
    """Routes ``requests.Session.request`` calls into the Flask test client."""

    def __init__(self, client, base_url='http://testserver'):
        self.client = client
        self.base_url = base_url
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = url[len(self.base_url):] if url.startswith(self.base_url) else url
        self.calls.append((method, path))
        resp = self.client.open(path, method=method, json=json, headers=headers or {})
        return FakeResponse(resp.get_json(silent=True), resp.status_code)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import quizroom.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def api(client):
    return RoomApiClient('http://testserver', session=FlaskSession(client))


@pytest.fixture()
def make_room(client):
    """Create a quiz of ``quiz_type`` with questions, open a room, join players."""

    def _make(quiz_type='qa', questions=None, nicknames=('Alice', 'Bob')):
        res = client.post('/api/quizzes', json={'title': f'{quiz_type} quiz', 'quiz_type': quiz_type})
        assert res.status_code == 201
        quiz = res.get_json()
        res = client.put(
            f"/api/quizzes/{quiz['id']}/questions",
            json={'questions': questions if questions is not None else DEFAULT_QUESTIONS[quiz_type]},
        )
        assert res.status_code == 200, res.get_json()
        saved = res.get_json()
        res = client.post('/api/rooms', json={'quiz_id': quiz['id']})
        assert res.status_code == 201
        room = res.get_json()
        players = []
        for nickname in nicknames:
            res = client.post(f"/api/rooms/{room['room_code']}/join", json={'nickname': nickname})
            assert res.status_code == 201
            players.append(res.get_json())
        return SimpleNamespace(
            quiz=quiz,
            questions=saved,
            question_ids=[q['id'] for q in saved],
            code=room['room_code'],
            host_token=room['host_token'],
            players=players,
        )

    return _make
