"""Shared fixtures: a chunk store rooted in tmp_path and the services on top of it."""

import pytest
from fastapi.testclient import TestClient

from main import build_session_manager, create_app
from services.chunk_store import ChunkStore
from services.playlist import PlaylistGenerator
from services.session_registry import SessionRegistry

DEFAULT_DURATION = 5.0


@pytest.fixture
def storage_root(tmp_path):
    return tmp_path / "videos"


@pytest.fixture
def store(storage_root):
    s = ChunkStore(storage_root)
    s.ensure_root()
    return s


@pytest.fixture
def registry(store):
    return SessionRegistry(store, DEFAULT_DURATION)


@pytest.fixture
def generator(store, registry):
    return PlaylistGenerator(store, registry)


@pytest.fixture
def manager(storage_root):
    m = build_session_manager(storage_root, default_segment_duration=DEFAULT_DURATION)
    m.startup()
    return m


@pytest.fixture
def client(storage_root):
    app = create_app(storage_root=storage_root, default_segment_duration=DEFAULT_DURATION)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_files():
    def _make(directory, *names, data=b"\x00" * 10):
        directory.mkdir(parents=True, exist_ok=True)
        for name in names:
            (directory / name).write_bytes(data)
        return directory

    return _make
