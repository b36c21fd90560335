from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import messaging_core.db.session as db_session
from messaging_core.main import app
from messaging_core.models import User


@pytest.fixture()
def database(tmp_path):
    database_path = tmp_path / "test.db"
    db_session.configure_engine(f"sqlite:///{database_path}")
    db_session.init_db()


@pytest.fixture()
def client(database):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_user(database):
    def _make_user(username: str, *, full_name: str | None = None) -> str:
        with db_session.open_session() as db:
            user = User(username=username, full_name=full_name or username.title())
            db.add(user)
            db.commit()
            return user.id

    return _make_user
