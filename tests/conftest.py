from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="kestrel-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'kestrel.db'}"
os.environ["DATA_DIR"] = str(_TEST_DIR)
os.environ["BROWSER_USER_DATA_DIR"] = str(_TEST_DIR / "browser_profile")
os.environ["APP_ENV"] = "test"

import pytest  # noqa: E402

from kestrel.db import models  # noqa: E402,F401
from kestrel.db.base import Base  # noqa: E402
from kestrel.db.session import SessionLocal, engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db_session():
    with SessionLocal() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_runtime(monkeypatch) -> None:
    from kestrel.core import runtime

    monkeypatch.setattr(runtime, "_EVENT_BUS", None)
    monkeypatch.setattr(runtime, "_CONTROLLERS", {})
    monkeypatch.setattr(runtime, "_START_LOCKS", {})
    yield
