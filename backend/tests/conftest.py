import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from consent_portal.config import settings
from consent_portal.database import get_db, get_session_factory, init_db
from consent_portal.dependencies import get_dispatcher
from consent_portal.errors import DispatchError
from consent_portal.main import app
from consent_portal.models.recipient import Client, JobseekerProfile
from consent_portal.utils.security import hash_api_key

OPERATOR_KEY = "test-operator-key"


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class FakeDispatcher:
    """Records every message; raises DispatchError for addresses in ``failing``."""

    def __init__(self):
        self.sent: list[dict] = []
        self.failing: set[str] = set()

    def send(self, to, subject, html_body, text_body):
        if to in self.failing:
            raise DispatchError(f"mailbox {to} unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html_body, "text": text_body})

    @property
    def recipients(self) -> list[str]:
        return [m["to"] for m in self.sent]


@pytest.fixture(scope="session")
def operator_key_hash():
    return hash_api_key(OPERATOR_KEY)


@pytest.fixture
def tmp_data_dir(tmp_path):
    data_dir = tmp_path / "ConsentPortal"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def test_db(tmp_data_dir):
    db_path = tmp_data_dir / "db.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    init_db(db_path)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSession
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def recipients(test_db):
    with test_db() as db:
        db.add_all([
            Client(id="c-1", company_name="Acme Corp", email_address1="acme@example.com"),
            Client(id="c-2", company_name="Globex", email_address1="globex@example.com"),
            Client(id="c-3", company_name="NoMail Ltd", email_address1=None),
            JobseekerProfile(id="j-1", first_name="Jane", last_name="Doe", email="jane@example.com"),
            JobseekerProfile(id="j-2", first_name="John", last_name="Roe", email="john@example.com"),
        ])
        db.commit()


@pytest.fixture
def dispatcher(test_db):
    fake = FakeDispatcher()
    app.dependency_overrides[get_dispatcher] = lambda: fake
    return fake


@pytest.fixture
def restore_settings():
    original = settings.model_dump()
    yield settings
    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture
def client(tmp_data_dir, test_db, recipients, dispatcher, operator_key_hash, restore_settings):
    settings.data_dir = tmp_data_dir
    settings.operator_key_hash = operator_key_hash
    settings.client_url = "http://portal.test"
    return TestClient(app)


@pytest.fixture
def auth():
    return {"Authorization": f"Bearer {OPERATOR_KEY}", "X-Operator-Id": "recruiter-1"}
