import pytest
from cryptography.fernet import Fernet

from ridesync import create_app
from ridesync.extensions import db as _db
from ridesync.models.checkpoint_repository import SqlAlchemyCheckpointRepository
from ridesync.models.credential_repository import SqlAlchemyCredentialRepository
from ridesync.models.preference_repository import SqlAlchemyPreferenceRepository
from ridesync.models.record_repository import SqlAlchemyRecordRepository
from ridesync.services.container import get_container
from ridesync.services.token_encryption import TokenEncryption

CLOUD_URL = "https://cloud.test"


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


class RecordingSleep:
    """Sleep stand-in that records requested durations instead of waiting."""

    def __init__(self):
        self.calls = []

    def __call__(self, ms):
        self.calls.append(ms)


@pytest.fixture
def encryption_key():
    return Fernet.generate_key().decode()


@pytest.fixture
def app(encryption_key):
    test_config = {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "testing",
        "CLOUD_API_URL": CLOUD_URL,
        "CREDENTIAL_ENCRYPTION_KEY": encryption_key,
        "AUTO_SYNC_ENABLED": False,
        "SCHEDULER_ENABLED": False,
        "LOG_FORMAT": "standard",
    }
    flask_app = create_app(test_config)

    with flask_app.app_context():
        yield flask_app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def container(app):
    return get_container(app)


@pytest.fixture
def cipher(encryption_key):
    return TokenEncryption(encryption_key)


@pytest.fixture
def credential_repository(db, cipher):
    return SqlAlchemyCredentialRepository(db, cipher=cipher)


@pytest.fixture
def record_repository(db):
    return SqlAlchemyRecordRepository(db)


@pytest.fixture
def checkpoint_repository(db):
    return SqlAlchemyCheckpointRepository(db)


@pytest.fixture
def preference_repository(db):
    return SqlAlchemyPreferenceRepository(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return RecordingSleep()
