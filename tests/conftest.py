import uuid

import pytest

from reado import create_app
from reado.extensions import db as _db
from reado.config import TestConfig
from reado.models.user import User

TEST_USER_ID = str(uuid.uuid4())
OTHER_USER_ID = str(uuid.uuid4())


def _make_user(user_id, name):
    return User(
        id=user_id,
        google_id=f'google-{user_id}',
        name=name,
        email=f'{name.lower().replace(" ", ".")}@example.com',
        picture=f'https://example.com/{user_id}.png',
        access_token='access-token',
    )


def _build_app(config):
    application = create_app(config)

    with application.app_context():
        _db.create_all()
        _db.session.add(_make_user(TEST_USER_ID, 'Test User'))
        _db.session.add(_make_user(OTHER_USER_ID, 'Other User'))
        _db.session.commit()

        yield application

        application.extensions['moderation'].drain(timeout=5)
        _db.session.remove()
        _db.drop_all()

    application.extensions['moderation'].shutdown()


@pytest.fixture
def app():
    """Create a test Flask application with SQLite in-memory database."""
    yield from _build_app(TestConfig)


@pytest.fixture
def file_app(tmp_path):
    """Like ``app`` but backed by a SQLite file, so threads get their own connections."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'reado.db'}"

    yield from _build_app(FileConfig)


@pytest.fixture
def client(app):
    """Test client; every request goes through the guard pipeline."""
    yield app.test_client()


@pytest.fixture
def moderation(app):
    return app.extensions['moderation']
