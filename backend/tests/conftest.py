import os
import sys
from datetime import datetime, timedelta

import pytest

# Ensure the backend root (containing the `storygame` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from storygame import create_app, db
from storygame.services.games import clock


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ['http://localhost:5173']
    AI_API_KEY = None
    AI_BASE_URL = 'https://ai.example.test/v1'
    AI_MODEL = 'test-model'
    AI_TIMEOUT_SEC = 3
    MIN_PLAYERS = 2
    LOBBY_STALE_AFTER_SEC = 1800
    LOBBY_SCAN_LIMIT = 200
    TRANSACTION_RETRIES = 3
    TEST_USER_IDS = []


class FrozenClock:
    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)
        return self.current


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import storygame.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def frozen_clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 1, 1, 12, 0, 0))
    monkeypatch.setattr(clock, 'now', frozen)
    return frozen
