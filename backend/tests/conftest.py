import os
import tempfile

# CRITICAL: Set environment variables BEFORE any carbon_ledger imports
# These must be set before carbon_ledger.config.settings is loaded
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), "test_carbon_ledger.db")
_TEST_STORAGE_DIR = os.path.join(tempfile.gettempdir(), "test_carbon_ledger_storage")
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests
os.environ["STORAGE_DIR"] = _TEST_STORAGE_DIR
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["EMAIL_BACKEND"] = "log"

import shutil
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Now import carbon_ledger modules - they will use the test DATABASE_URL
from carbon_ledger import models
from carbon_ledger.api import deps
from carbon_ledger.database import Base, engine as app_engine, get_db
from carbon_ledger.main import app
from carbon_ledger.services.email_sender import set_email_sender
from carbon_ledger.services.statements import set_statement_renderer

# Use the same engine that the app uses
TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True
)


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Apply override at module load - this needs to happen before tests run
app.dependency_overrides[get_db] = override_get_db


class RecordingEmailSender:
    """Collects outgoing mail instead of delivering it."""

    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(message)


class FailingRenderer:
    """Statement renderer standing in for an unavailable PDF service."""

    template_version = "test"

    def __init__(self):
        self.calls = 0

    def render(self, claim, intervention, domain):
        self.calls += 1
        raise RuntimeError("statement service unavailable")


class StubUser:
    def __init__(self, *, user_id: int, domain_id: int, is_admin: bool = False):
        self.id = user_id
        self.email = f"user{user_id}@test.com"
        self.domain_id = domain_id
        self.is_admin = is_admin
        self.active = True


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """
    Create all tables before each test and clean up after.
    Also resets dependency overrides and the process-wide email sender and
    statement renderer so tests stay isolated.
    """
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)
    shutil.rmtree(_TEST_STORAGE_DIR, ignore_errors=True)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)
    set_email_sender(None)
    set_statement_renderer(None)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    shutil.rmtree(_TEST_STORAGE_DIR, ignore_errors=True)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def outbox():
    sender = RecordingEmailSender()
    set_email_sender(sender)
    return sender


@pytest.fixture
def login_as():
    """Make subsequent requests run as a user of the given domain."""

    def _login(user: models.User | None = None, *, domain_id: int | None = None, is_admin=False):
        if user is not None:
            stub = StubUser(user_id=user.id, domain_id=user.domain_id, is_admin=user.is_admin)
        else:
            stub = StubUser(user_id=0, domain_id=int(domain_id), is_admin=is_admin)
        app.dependency_overrides[deps.get_current_user] = lambda: stub
        return stub

    return _login


@pytest.fixture
def failing_renderer():
    renderer = FailingRenderer()
    app.dependency_overrides[deps.get_renderer] = lambda: renderer
    return renderer


def seed_domain(
    db, name: str, *, email: str | None = None, level: int | None = None
) -> models.Domain:
    domain = models.Domain(
        name=name,
        supply_chain_level=level,
        company_name=name.split(".")[0].replace("-", " ").title(),
        company_email=email if email is not None else f"ops@{name}",
    )
    db.add(domain)
    db.commit()
    db.refresh(domain)
    return domain


def seed_user(db, domain: models.Domain, *, is_admin: bool = False) -> models.User:
    user = models.User(
        email=f"{'admin' if is_admin else 'user'}@{domain.name}",
        name=domain.company_name,
        domain_id=domain.id,
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def seed_intervention(
    db,
    domain: models.Domain,
    *,
    ref: str = "INT-0001",
    total="500",
    remaining=None,
    status: models.InterventionStatus = models.InterventionStatus.verified,
) -> models.Intervention:
    intervention = models.Intervention(
        intervention_id=ref,
        domain_id=domain.id,
        modality="Maritime",
        geography="Rotterdam",
        vintage="2024",
        low_carbon_fuel="HVO100",
        feedstock="Used cooking oil",
        certification_scheme="ISCC EU",
        total_amount=Decimal(str(total)),
        remaining_amount=Decimal(str(remaining if remaining is not None else total)),
        status=status,
    )
    db.add(intervention)
    db.commit()
    db.refresh(intervention)
    return intervention


def seed_partnership(
    db,
    a: models.Domain,
    b: models.Domain,
    *,
    status: models.PartnershipStatus = models.PartnershipStatus.active,
) -> models.Partnership:
    partnership = models.Partnership(
        domain1_id=a.id,
        domain2_id=b.id,
        domain_low_id=min(a.id, b.id),
        domain_high_id=max(a.id, b.id),
        status=status,
    )
    db.add(partnership)
    db.commit()
    db.refresh(partnership)
    return partnership
