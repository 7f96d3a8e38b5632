import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chronojam.config import Config
from chronojam.game import catalog, engine, service
from chronojam.server import create_app


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    ADMIN_TOKEN = "test-admin"
    START_TICKER = False
    SOCKETIO_ASYNC_MODE = "threading"


T0 = 1_000_000


@pytest.fixture(autouse=True)
def _clean_rooms():
    service.clear_rooms()
    yield
    service.clear_rooms()


@pytest.fixture
def app_ctx():
    app, socketio = create_app(TestConfig)
    return {"app": app, "socketio": socketio}


@pytest.fixture
def app(app_ctx):
    return app_ctx["app"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sio_client(app_ctx):
    app = app_ctx["app"]
    test_client = app_ctx["socketio"].test_client(app, flask_test_client=app.test_client())
    yield test_client
    if test_client.is_connected():
        test_client.disconnect()


@pytest.fixture
def rounds():
    return list(catalog.DEFAULT_ROUNDS)


@pytest.fixture
def lobby(rounds):
    state = engine.create_lobby("room-1", T0)
    engine.assign_rounds(state, rounds, T0)
    engine.join(state, "p1", "Player One", T0)
    return state


@pytest.fixture
def running(lobby):
    engine.start_game(lobby, T0)
    return lobby
