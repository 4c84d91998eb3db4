"""
tests/conftest.py
"""
from __future__ import annotations

import datetime as _dt
import itertools
from pathlib import Path
from typing import Generator

import pytest
from flask.testing import FlaskClient
from pytest import MonkeyPatch

from folio.blog import app, get_store, init_db
from folio.store import MemoryBackend, PersistentStore


@pytest.fixture(scope="session")
def _tmp_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """One temp file for the whole test session (faster than per-test)."""
    return tmp_path_factory.mktemp("data") / "test.sqlite3"


@pytest.fixture(scope="session", autouse=True)
def _configure_app(_tmp_db_path: Path) -> None:
    """
    Configure the Flask app *once* before the first test is collected.
    """
    app.config.update(
        TESTING=True,
        DATABASE=str(_tmp_db_path),
        RESEED_WHEN_EMPTY=False,
    )
    with app.app_context():
        init_db()


@pytest.fixture
def client() -> Generator[FlaskClient, None, None]:
    """
    Test client on a wiped + freshly seeded store, so no account,
    post or profile edit leaks from one test into the next.
    """
    with app.test_client() as client:
        with app.app_context():
            get_store().clear()
            init_db()
            yield client


@pytest.fixture
def store() -> PersistentStore:
    """A throw-away in-memory store for unit tests of the core modules."""
    return PersistentStore(MemoryBackend())


@pytest.fixture(autouse=True, scope="session")
def _fast_clock():
    """
    Patch folio.seed.utc_now for the whole test session so every call
    returns an ever-increasing timestamp.
    """
    from folio import seed  # import here to avoid early import

    counter = itertools.count()  # 0, 1, 2, …

    base = _dt.datetime(2099, 1, 1, tzinfo=_dt.timezone.utc)

    def _fake_now():
        return base + _dt.timedelta(seconds=next(counter))

    mp = MonkeyPatch()
    mp.setattr(seed, "utc_now", _fake_now)

    yield  # tests run here

    mp.undo()  # clean up at session end
