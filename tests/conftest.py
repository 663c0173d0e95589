"""
Pytest configuration and shared fixtures.
"""
import pytest
from sqlalchemy.orm import sessionmaker

from entity_merge.auth.operators import Operator
from entity_merge.core.config import Settings, reset_settings
from entity_merge.core.database import build_engine, reset_engine
from entity_merge.core.gateway import SqlAlchemyGateway
from entity_merge.core.models import (
    Account,
    Activity,
    Agreement,
    Base,
    Location,
    LocationContact,
    Note,
)
from entity_merge.services.lookup_service import LookupService


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all app-related env vars to ensure clean state.
    """
    env_vars = [
        "DATABASE_URL",
        "LOG_LEVEL",
        "JWT_SECRET_KEY",
        "JWT_ALGORITHM",
        "OPERATOR_ROLES",
        "NAME_SIMILARITY_THRESHOLD",
        "ADDRESS_MATCH_SCORE",
        "CANDIDATE_ACCOUNT_TYPE",
        "CANDIDATE_ACCOUNT_STATUS",
        "CHANGE_LOG_DEFAULT_LIMIT",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    # Reset settings singleton
    reset_settings()

    yield

    # Reset again after test
    reset_settings()


@pytest.fixture(scope="function")
def test_db():
    """
    Create an in-memory SQLite database for testing.

    Fresh database for each test, with foreign keys enforced.
    """
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def gateway(test_db):
    return SqlAlchemyGateway(test_db)


@pytest.fixture
def test_settings():
    """Settings with defaults, independent of the environment."""
    return Settings(_env_file=None, database_url="sqlite://")


@pytest.fixture
def operator():
    return Operator(user_id="42", email="ops@example.com", name="Ops User", role="admin")


@pytest.fixture
def app_env(clean_env, monkeypatch):
    """Environment for running the FastAPI app against in-memory SQLite."""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("JWT_SECRET_KEY", "test-secret")
    reset_settings()
    reset_engine()
    yield
    reset_engine()


# =============================================================================
# Record builders
# =============================================================================

def make_account(db, name, account_type="single_location", **kwargs):
    account = Account(name=name, account_type=account_type, **kwargs)
    db.add(account)
    db.flush()
    return account


def make_location(db, account, name=None, **kwargs):
    location = Location(account_id=account.id, name=name or account.name, **kwargs)
    db.add(location)
    db.flush()
    return location


def add_dependents(db, account, location=None, label="x"):
    """One agreement, activity and note (and a contact when a location is given)."""
    location_id = location.id if location is not None else None
    db.add_all([
        Agreement(account_id=account.id, location_id=location_id, title=f"Agreement {label}"),
        Activity(account_id=account.id, location_id=location_id, subject=f"Call {label}"),
        Note(account_id=account.id, location_id=location_id, content=f"Note {label}"),
    ])
    if location is not None:
        db.add(LocationContact(location_id=location.id, name=f"Contact {label}"))
    db.flush()


@pytest.fixture
def single_accounts(test_db):
    """Two single-location accounts, each with one location and dependents."""
    a = make_account(test_db, "Atlanta Fertility Center")
    a_loc = make_location(
        test_db, a,
        address_line1="100 Peachtree Street", city="Atlanta", state="GA", zip_code="30303",
        phone="404-555-0100", notes="Front desk opens at 8",
    )
    add_dependents(test_db, a, a_loc, label="a")

    b = make_account(test_db, "Atlanta Fertility Clinic")
    b_loc = make_location(
        test_db, b,
        address_line1="200 Piedmont Avenue", city="Atlanta", state="GA", zip_code="30308",
        email="info@example.com", notes="Parking in rear",
    )
    add_dependents(test_db, b, b_loc, label="b")

    test_db.commit()
    return a, b, a_loc, b_loc


@pytest.fixture
def multi_account(test_db):
    """A multi-location account with two locations, each with its own dependents."""
    account = make_account(
        test_db, "Denver Women's Medical Group", account_type="multi_location",
        industry="healthcare", primary_contact_name="Dana Reyes",
        primary_contact_email="dana@example.com", primary_contact_phone="303-555-0199",
    )
    downtown = make_location(
        test_db, account, name="Denver Downtown",
        address_line1="1 Main St", city="Denver", state="CO", zip_code="80202",
        is_primary=True,
    )
    aurora = make_location(
        test_db, account, name="Denver Aurora",
        address_line1="9 Colfax Ave", city="Aurora", state="CO", zip_code="80010",
        contact_name="Sam Lee", phone="303-555-0142", country="US",
    )
    add_dependents(test_db, account, downtown, label="downtown")
    add_dependents(test_db, account, aurora, label="aurora")
    test_db.commit()
    return account, downtown, aurora


@pytest.fixture
def assert_no_orphans(test_db):
    """System-wide check that every foreign key resolves to a live parent."""
    def check():
        report = LookupService(test_db).integrity_report()
        assert report["orphans"] == {}
        assert report["ok"] is True
        return report
    return check
