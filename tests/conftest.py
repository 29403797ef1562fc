import base64
import itertools
import os
import sys
from datetime import timedelta
from pathlib import Path

# Settings are always built explicitly in tests; these only keep an accidental
# get_settings() call from failing at import time.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("MASTER_ENCRYPTION_KEY", base64.b64encode(b"\x01" * 32).decode())

ROOT = Path(__file__).resolve().parent.parent
BACKEND = ROOT / "backend"
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from auth.service import AuthService  # noqa: E402
from core.config import Settings  # noqa: E402
from core.email import EmailService  # noqa: E402
from database import Base, utcnow  # noqa: E402
from main import create_app  # noqa: E402
from models.contract import Contract  # noqa: E402
from models.partner import Partner  # noqa: E402
from models.user import User  # noqa: E402
import models.audit_log  # noqa: F401, E402
import models.document  # noqa: F401, E402
import models.refresh_token  # noqa: F401, E402
import models.reminder  # noqa: F401, E402

PASSWORD = "Secret123"

_contract_numbers = itertools.count(1)


class FakeClock:
    """Injectable clock.  Starts at real time so JWT expiry checks still pass."""

    def __init__(self):
        self.now = utcnow().replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingEmail(EmailService):
    """Captures sends instead of talking SMTP; ``fail`` makes every send raise."""

    def __init__(self):
        super().__init__()
        self.sent = []
        self.fail = False

    def send(self, to, subject, html_body):
        if self.fail:
            raise ConnectionError("SMTP unavailable")
        self.sent.append((to, subject))

    def subjects_to(self, to):
        return [subject for addr, subject in self.sent if addr == to]


@pytest.fixture
def make_settings(tmp_path):
    def _make(**overrides):
        values = dict(
            database_url="sqlite://",
            secret_key="test-secret-key-for-testing-only-do-not-use-in-production",
            master_encryption_key=base64.b64encode(b"\x01" * 32).decode(),
            password_hash_rounds=1000,
            storage_path=str(tmp_path / "documents"),
            scheduler_enabled=False,
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def email():
    return RecordingEmail()


@pytest.fixture
def app(settings, engine, clock, email):
    app = create_app(settings, engine=engine)
    app.state.clock = clock
    app.state.email = email
    return app


@pytest.fixture
def client(app):
    # No context manager: the lifespan (scheduler) is not needed here.
    return TestClient(app)


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def auth_service(app, db, settings, clock, email):
    state = app.state
    return AuthService(
        db,
        settings,
        state.password_hasher,
        state.totp,
        state.secret_box,
        email,
        clock=clock,
        recorder=state.audit_recorder,
    )


@pytest.fixture
def make_user(app, db):
    def _make(email="user@example.com", password=PASSWORD, role="USER", status="ACTIVE", **fields):
        user = User(
            email=email,
            password_hash=app.state.password_hasher.hash(password),
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            role=role,
            status=status,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def partner(db):
    partner = Partner(name="Acme Supplies", type="SUPPLIER", email="sales@acme.test")
    db.add(partner)
    db.commit()
    db.refresh(partner)
    return partner


@pytest.fixture
def make_contract(db, partner):
    def _make(owner, status="ACTIVE", end_date=None, title="Office lease"):
        contract = Contract(
            contract_number=f"TEST-{next(_contract_numbers):05d}",
            title=title,
            type="LEASE",
            status=status,
            end_date=end_date,
            partner_id=partner.id,
            owner_id=owner.id,
            created_by_id=owner.id,
        )
        db.add(contract)
        db.commit()
        db.refresh(contract)
        return contract

    return _make


@pytest.fixture
def login(client):
    """Log in through the API and return bearer headers."""

    def _login(email, password=PASSWORD):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login
