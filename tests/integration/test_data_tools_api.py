"""
Integration tests for the data tools API endpoints.

The app runs against the per-test in-memory SQLite session.
"""
import pytest
from fastapi.testclient import TestClient

from entity_merge.api.v1.auth import require_operator
from entity_merge.auth.operators import Operator, create_access_token
from entity_merge.core.config import get_settings
from entity_merge.core.database import get_db
from entity_merge.core.models import Account, ChangeLog, Location
from entity_merge.main import app

BASE = "/api/v1/data-tools"


@pytest.fixture
def client(app_env, test_db):
    """Create test client with overridden database and an admin operator."""
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[require_operator] = lambda: Operator(
        user_id="42", email="ops@example.com", name="Ops User", role="admin"
    )
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def unauthenticated_client(app_env, test_db):
    """Client that goes through real token verification."""
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class TestAuthorization:

    @pytest.mark.integration
    def test_missing_header(self, unauthenticated_client):
        response = unauthenticated_client.get(f"{BASE}/similarity-candidates")
        assert response.status_code == 401

    @pytest.mark.integration
    def test_bad_scheme(self, unauthenticated_client):
        response = unauthenticated_client.get(
            f"{BASE}/similarity-candidates", headers={"Authorization": "Token abc"}
        )
        assert response.status_code == 401

    @pytest.mark.integration
    def test_non_operator_role_forbidden(self, unauthenticated_client):
        token = create_access_token(5, role="viewer", settings=get_settings())
        response = unauthenticated_client.get(
            f"{BASE}/similarity-candidates", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403

    @pytest.mark.integration
    def test_operator_token_accepted(self, unauthenticated_client):
        token = create_access_token(5, role="bd_team", settings=get_settings())
        response = unauthenticated_client.get(
            f"{BASE}/similarity-candidates", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200


class TestSimilarityCandidates:

    @pytest.mark.integration
    def test_groups_in_camel_case(self, client, single_accounts):
        response = client.get(f"{BASE}/similarity-candidates", params={"mode": "name"})

        assert response.status_code == 200
        data = response.json()
        assert data["totalGroups"] == 1
        group = data["groups"][0]
        assert group["similarityScore"] == 1.0
        assert group["matchType"] == "name"
        assert group["accounts"][0]["accountType"] == "single_location"
        assert group["accounts"][0]["locations"][0]["kind"] == "real"
        assert "addressLine1" in group["accounts"][0]["locations"][0]

    @pytest.mark.integration
    def test_invalid_mode(self, client):
        response = client.get(f"{BASE}/similarity-candidates", params={"mode": "phone"})
        assert response.status_code == 422


class TestMergeAccounts:

    @pytest.mark.integration
    def test_merge(self, client, test_db, single_accounts):
        a, b, _, _ = single_accounts
        a_id, b_id = a.id, b.id

        response = client.post(f"{BASE}/merge-accounts", json={"accountIds": [a_id, b_id]})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mergedAccountId"] == a_id
        assert data["locationCount"] == 2
        assert data["agreementsCount"] == 2
        assert data["activitiesCount"] == 2
        assert data["notesCount"] == 2
        assert test_db.get(Account, b_id) is None
        assert test_db.query(ChangeLog).one().user_id == "42"

    @pytest.mark.integration
    def test_explicit_primary(self, client, single_accounts):
        a, b, _, _ = single_accounts

        response = client.post(
            f"{BASE}/merge-accounts",
            json={"accountIds": [a.id, b.id], "primaryAccountId": b.id},
        )

        assert response.status_code == 200
        assert response.json()["mergedAccountId"] == b.id

    @pytest.mark.integration
    def test_single_id_is_bad_request(self, client, single_accounts):
        a, _, _, _ = single_accounts

        response = client.post(f"{BASE}/merge-accounts", json={"accountIds": [a.id]})

        assert response.status_code == 400
        assert response.json()["detail"]["error_type"] == "ValidationError"

    @pytest.mark.integration
    def test_unknown_id_is_not_found(self, client, single_accounts):
        a, _, _, _ = single_accounts

        response = client.post(f"{BASE}/merge-accounts", json={"accountIds": [a.id, 31337]})

        assert response.status_code == 404

    @pytest.mark.integration
    def test_multi_location_is_conflict(self, client, single_accounts, multi_account):
        a, _, _, _ = single_accounts
        multi, _, _ = multi_account

        response = client.post(f"{BASE}/merge-accounts", json={"accountIds": [a.id, multi.id]})

        assert response.status_code == 409
        assert response.json()["detail"]["error_type"] == "InvariantViolation"


class TestLocationOperations:

    @pytest.mark.integration
    def test_merge_locations(self, client, test_db, multi_account):
        _, downtown, aurora = multi_account
        downtown_id, aurora_id = downtown.id, aurora.id

        response = client.post(
            f"{BASE}/merge-locations",
            json={"sourceLocationId": aurora_id, "targetLocationId": downtown_id},
        )

        assert response.status_code == 200
        assert response.json()["sourceAccountOutcome"] == "demoted"
        assert test_db.get(Location, aurora_id) is None

    @pytest.mark.integration
    def test_add_location_to_multi(self, client, single_accounts, multi_account):
        _, _, a_loc, _ = single_accounts
        multi, _, _ = multi_account

        response = client.post(
            f"{BASE}/add-location-to-multi",
            json={"locationId": a_loc.id, "targetAccountId": multi.id},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["locationCount"] == 3
        assert data["sourceAccountDeleted"] is True

    @pytest.mark.integration
    def test_remove_location_from_multi(self, client, test_db, multi_account):
        _, _, aurora = multi_account

        response = client.post(f"{BASE}/remove-location-from-multi", json={"locationId": aurora.id})

        assert response.status_code == 200
        data = response.json()
        assert data["accountName"] == "Denver Aurora"
        assert test_db.get(Account, data["accountId"]).account_type == "single_location"

    @pytest.mark.integration
    def test_remove_last_location_is_conflict(self, client, multi_account):
        _, downtown, aurora = multi_account
        client.post(f"{BASE}/remove-location-from-multi", json={"locationId": aurora.id})

        response = client.post(f"{BASE}/remove-location-from-multi", json={"locationId": downtown.id})

        assert response.status_code == 409


class TestLookups:

    @pytest.mark.integration
    def test_multi_location_accounts(self, client, multi_account):
        response = client.get(f"{BASE}/multi-location-accounts")

        assert response.status_code == 200
        accounts = response.json()["accounts"]
        assert accounts[0]["name"] == "Denver Women's Medical Group"
        assert accounts[0]["locationCount"] == 2

    @pytest.mark.integration
    def test_search_locations(self, client, multi_account):
        response = client.get(f"{BASE}/search-locations", params={"q": "aurora"})

        assert response.status_code == 200
        locations = response.json()["locations"]
        assert locations[0]["accountName"] == "Denver Women's Medical Group"

    @pytest.mark.integration
    def test_search_requires_query(self, client):
        response = client.get(f"{BASE}/search-locations", params={"q": "  "})
        assert response.status_code == 400

    @pytest.mark.integration
    def test_integrity(self, client, single_accounts):
        response = client.get(f"{BASE}/integrity")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "orphans": {}, "typeMismatches": []}

    @pytest.mark.integration
    def test_change_log(self, client, single_accounts):
        a, b, _, _ = single_accounts
        client.post(f"{BASE}/merge-accounts", json={"accountIds": [a.id, b.id]})

        response = client.get(f"{BASE}/change-log", params={"action_type": "merge_accounts"})

        assert response.status_code == 200
        logs = response.json()["logs"]
        assert len(logs) == 1
        assert logs[0]["actionType"] == "merge_accounts"
        assert logs[0]["userEmail"] == "ops@example.com"

    @pytest.mark.integration
    def test_change_log_rejects_unknown_action(self, client):
        response = client.get(f"{BASE}/change-log", params={"action_type": "delete_everything"})
        assert response.status_code == 400


class TestServiceEndpoints:

    @pytest.mark.integration
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "merge-accounts" in response.json()["tools"]

    @pytest.mark.integration
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"
