"""Test configuration and fixtures"""

import dataclasses
import random
import tempfile
from pathlib import Path

import pytest

from playdeck.catalog.library import Catalog
from playdeck.catalog.loader import SAMPLE_SONGS
from playdeck.catalog.models import Song
from playdeck.core.config import SecurityConfig, default_config
from playdeck.core.passwords import PasswordHasher
from playdeck.core.store import UserStore
from playdeck.server.context import ServerContext
from playdeck.server.session import SessionHandler
from playdeck.services.attempts import AttemptTracker
from playdeck.services.auth import AuthService
from playdeck.services.playlists import PlaylistService
from playdeck.services.social import SocialService


class FakeClock:
    """Manually advanced clock for the attempt tracker"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingRenderer:
    """Renderer that remembers every call as (action, title)"""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []

    def play(self, song: Song) -> None:
        self.calls.append(("play", song.title))

    def pause(self, song: Song) -> None:
        self.calls.append(("pause", song.title))

    def stop(self, song: Song | None) -> None:
        self.calls.append(("stop", song.title if song else None))


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(temp_dir):
    return UserStore(temp_dir / "users.json")


@pytest.fixture
def catalog():
    """The five built-in sample songs"""
    return Catalog(SAMPLE_SONGS)


@pytest.fixture
def hasher():
    """Cheapest bcrypt cost so tests stay fast"""
    return PasswordHasher(rounds=4)


@pytest.fixture
def tracker(clock):
    return AttemptTracker(clock=clock)


@pytest.fixture
def auth(store, hasher, tracker):
    return AuthService(store, hasher, tracker)


@pytest.fixture
def playlists(store, catalog):
    return PlaylistService(store, catalog)


@pytest.fixture
def social(store):
    return SocialService(store)


@pytest.fixture
def make_user(auth):
    """Register a user through the auth service"""
    def _make(username: str, account_type: str = "free", password: str = "secret1"):
        return auth.register(username, password, account_type)
    return _make


@pytest.fixture
def config(temp_dir):
    config = default_config(temp_dir)
    return dataclasses.replace(config, security=SecurityConfig(bcrypt_rounds=4))


@pytest.fixture
def renderers():
    """Every RecordingRenderer handed out by the context, by owner"""
    return {}


@pytest.fixture
def context(config, catalog, tracker, renderers):
    def renderer_factory(owner: str) -> RecordingRenderer:
        renderer = RecordingRenderer()
        renderers[owner] = renderer
        return renderer

    return ServerContext.create(
        config,
        catalog,
        tracker=tracker,
        renderer_factory=renderer_factory,
        rng_factory=lambda: random.Random(7),
    )


@pytest.fixture
def session(context):
    """A session handler without a socket, driven through handle_line()"""
    return SessionHandler(context, peer="test")


@pytest.fixture
def logged_in(session):
    """Session of a registered and logged-in free user 'alice'"""
    assert session.handle_line("CREATE alice secret1 free") == ["CREATE_SUCCESS"]
    assert session.handle_line("LOGIN alice secret1") == ["LOGIN_SUCCESS"]
    return session
