"""
Tests for moving locations into and out of multi-location accounts.
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import add_dependents, make_account, make_location
from entity_merge.core.errors import InvariantViolation, NotFoundError, ValidationError
from entity_merge.core.gateway import SqlAlchemyGateway
from entity_merge.core.models import (
    Account,
    Activity,
    Agreement,
    ChangeLog,
    Location,
    LocationContact,
    Note,
)
from entity_merge.services.merge_service import MergeService
from entity_merge.services.topology_service import TopologyService


@pytest.fixture
def service(test_db):
    return TopologyService.for_session(test_db)


def _counts(db, account_id):
    return {
        model.__tablename__: db.query(model).filter_by(account_id=account_id).count()
        for model in (Location, Agreement, Activity, Note)
    }


class TestAddLocationToMulti:

    @pytest.mark.unit
    def test_moves_location_and_deletes_empty_account(
        self, test_db, service, single_accounts, multi_account, assert_no_orphans, operator
    ):
        a, _, a_loc, _ = single_accounts
        multi, _, _ = multi_account
        a_id, a_loc_id, multi_id = a.id, a_loc.id, multi.id

        result = service.add_location_to_multi(a_loc_id, multi_id, actor=operator)

        assert result.location_count == 3
        assert result.source_account_deleted is True
        assert result.source_account_id == a_id
        assert result.reassigned == {"agreements": 1, "activities": 1, "notes": 1}
        assert test_db.get(Location, a_loc_id).account_id == multi_id
        assert test_db.get(Account, a_id) is None
        assert _counts(test_db, multi_id)["agreements"] == 3
        assert test_db.query(LocationContact).filter_by(location_id=a_loc_id).count() == 1

        entry = test_db.query(ChangeLog).one()
        assert entry.action_type == "add_location"
        assert entry.entity_id == str(a_loc_id)
        assert_no_orphans()

    @pytest.mark.unit
    def test_target_must_be_multi_location(self, test_db, service, single_accounts):
        _, b, a_loc, _ = single_accounts

        with pytest.raises(InvariantViolation):
            service.add_location_to_multi(a_loc.id, b.id)

    @pytest.mark.unit
    def test_source_with_other_locations_rejected(self, test_db, service, single_accounts, multi_account):
        a, _, a_loc, _ = single_accounts
        multi, _, _ = multi_account
        make_location(test_db, a, name="Second site")
        test_db.commit()
        a_loc_id = a_loc.id

        with pytest.raises(InvariantViolation) as exc_info:
            service.add_location_to_multi(a_loc_id, multi.id)

        assert exc_info.value.details["location_count"] == 2
        assert test_db.get(Location, a_loc_id).account_id == a.id

    @pytest.mark.unit
    def test_location_already_in_target(self, service, multi_account):
        multi, downtown, _ = multi_account

        with pytest.raises(InvariantViolation):
            service.add_location_to_multi(downtown.id, multi.id)

    @pytest.mark.unit
    def test_missing_ids(self, service, multi_account, single_accounts):
        multi, _, _ = multi_account
        _, _, a_loc, _ = single_accounts

        with pytest.raises(NotFoundError):
            service.add_location_to_multi(777, multi.id)
        with pytest.raises(NotFoundError):
            service.add_location_to_multi(a_loc.id, 888)
        with pytest.raises(ValidationError):
            service.add_location_to_multi(None, multi.id)

    @pytest.mark.unit
    def test_failed_cleanup_keeps_move(self, test_db, single_accounts, multi_account, assert_no_orphans):
        a, _, a_loc, _ = single_accounts
        multi, _, _ = multi_account
        a_id, a_loc_id, multi_id = a.id, a_loc.id, multi.id

        gateway = SqlAlchemyGateway(test_db)
        gateway.bulk_delete_where_in = MagicMock(
            side_effect=OperationalError("DELETE FROM accounts", {}, Exception("lock timeout"))
        )

        result = TopologyService(gateway).add_location_to_multi(a_loc_id, multi_id)

        assert result.source_account_deleted is False
        assert result.location_count == 3
        assert test_db.get(Location, a_loc_id).account_id == multi_id
        assert test_db.get(Account, a_id) is not None
        assert_no_orphans()

    @pytest.mark.unit
    def test_failed_cleanup_rollback_keeps_move(
        self, test_db, single_accounts, multi_account, monkeypatch
    ):
        a, _, a_loc, _ = single_accounts
        multi, _, _ = multi_account
        a_id, a_loc_id, multi_id = a.id, a_loc.id, multi.id

        gateway = SqlAlchemyGateway(test_db)
        gateway.bulk_delete_where_in = MagicMock(
            side_effect=OperationalError("DELETE FROM accounts", {}, Exception("lock timeout"))
        )
        # Move commits first; only the cleanup transaction needs a rollback
        monkeypatch.setattr(
            test_db, "rollback",
            MagicMock(side_effect=OperationalError("ROLLBACK", {}, Exception("connection lost"))),
        )

        result = TopologyService(gateway).add_location_to_multi(a_loc_id, multi_id)

        assert result.source_account_deleted is False
        assert result.location_count == 3
        assert test_db.get(Location, a_loc_id).account_id == multi_id
        assert test_db.get(Account, a_id) is not None

class TestRemoveLocationFromMulti:

    @pytest.mark.unit
    def test_split_creates_single_location_account(
        self, test_db, service, multi_account, assert_no_orphans, operator
    ):
        multi, downtown, aurora = multi_account
        multi_id, aurora_id = multi.id, aurora.id

        result = service.remove_location_from_multi(aurora_id, actor=operator)

        assert result.account_name == "Denver Aurora"
        assert result.source_account_id == multi_id
        assert result.source_account_demoted is True
        assert result.reassigned == {"agreements": 1, "activities": 1, "notes": 1}

        new_account = test_db.get(Account, result.account_id)
        assert new_account.account_type == "single_location"
        assert new_account.industry == "healthcare"
        assert new_account.primary_contact_name == "Sam Lee"
        assert new_account.primary_contact_email == "dana@example.com"
        assert new_account.primary_contact_phone == "303-555-0142"
        assert new_account.sage_code is None
        assert new_account.udf_city == "Aurora"
        assert new_account.udf_country_code == "US"
        assert new_account.created_by == "42"

        moved = test_db.get(Location, aurora_id)
        assert moved.account_id == result.account_id
        assert moved.is_primary is True
        assert test_db.get(Account, multi_id).account_type == "single_location"
        assert _counts(test_db, result.account_id) == {
            "locations": 1, "agreements": 1, "activities": 1, "notes": 1,
        }

        entry = test_db.query(ChangeLog).one()
        assert entry.action_type == "remove_location"
        assert entry.entity_id == str(result.account_id)
        assert_no_orphans()

    @pytest.mark.unit
    def test_unnamed_location_gets_default_name(self, test_db, service, multi_account):
        multi, _, _ = multi_account
        third = Location(account_id=multi.id, name=None, city="Lakewood")
        test_db.add(third)
        test_db.commit()

        result = service.remove_location_from_multi(third.id)

        assert result.account_name == "New Account"
        assert result.source_account_demoted is False

    @pytest.mark.unit
    def test_last_location_guard(self, test_db, service):
        multi = make_account(test_db, "Lonely Multi", account_type="multi_location")
        only = make_location(test_db, multi)
        add_dependents(test_db, multi, only)
        test_db.commit()
        multi_id, only_id = multi.id, only.id
        accounts_before = test_db.query(Account).count()

        with pytest.raises(InvariantViolation):
            service.remove_location_from_multi(only_id)

        assert test_db.query(Account).count() == accounts_before
        assert test_db.get(Location, only_id).account_id == multi_id
        assert test_db.get(Account, multi_id).account_type == "multi_location"
        assert test_db.query(ChangeLog).count() == 0

    @pytest.mark.unit
    def test_single_location_account_rejected(self, service, single_accounts):
        _, _, a_loc, _ = single_accounts

        with pytest.raises(InvariantViolation):
            service.remove_location_from_multi(a_loc.id)

    @pytest.mark.unit
    def test_account_creation_failure_leaves_location_untouched(self, test_db, multi_account):
        multi, _, aurora = multi_account
        multi_id, aurora_id = multi.id, aurora.id

        gateway = SqlAlchemyGateway(test_db)
        gateway.insert = MagicMock(
            side_effect=OperationalError("INSERT INTO accounts", {}, Exception("constraint"))
        )

        with pytest.raises(OperationalError):
            TopologyService(gateway).remove_location_from_multi(aurora_id)

        assert test_db.get(Location, aurora_id).account_id == multi_id
        assert test_db.query(Account).count() == 1


class TestSplitThenRemerge:

    @pytest.mark.unit
    def test_round_trip_restores_counts(self, test_db, multi_account, assert_no_orphans):
        multi, downtown, aurora = multi_account
        multi_id, aurora_id = multi.id, aurora.id
        before = _counts(test_db, multi_id)
        agreement_titles = sorted(
            a.title for a in test_db.query(Agreement).filter_by(account_id=multi_id)
        )

        split = TopologyService.for_session(test_db).remove_location_from_multi(aurora_id)
        assert_no_orphans()

        merged = MergeService.for_session(test_db).merge_accounts(
            [multi_id, split.account_id], primary_id=multi_id
        )
        assert_no_orphans()

        assert merged.merged_account_id == multi_id
        assert _counts(test_db, multi_id) == before
        assert sorted(
            a.title for a in test_db.query(Agreement).filter_by(account_id=multi_id)
        ) == agreement_titles
        assert test_db.get(Account, multi_id).account_type == "multi_location"
        assert test_db.get(Account, split.account_id) is None

    @pytest.mark.unit
    def test_round_trip_on_three_location_account(self, test_db, multi_account, assert_no_orphans):
        multi, _, _ = multi_account
        boulder = make_location(
            test_db, multi, name="Denver Boulder",
            address_line1="4 Pearl St", city="Boulder", state="CO", zip_code="80302",
        )
        add_dependents(test_db, multi, boulder, label="boulder")
        test_db.commit()
        multi_id, boulder_id = multi.id, boulder.id
        before = _counts(test_db, multi_id)
        note_contents = sorted(n.content for n in test_db.query(Note).filter_by(account_id=multi_id))

        split = TopologyService.for_session(test_db).remove_location_from_multi(boulder_id)

        assert split.source_account_demoted is False
        assert test_db.get(Account, multi_id).account_type == "multi_location"
        assert _counts(test_db, multi_id)["locations"] == 2

        merged = MergeService.for_session(test_db).merge_accounts(
            [multi_id, split.account_id], primary_id=multi_id
        )

        assert merged.location_count == 3
        assert _counts(test_db, multi_id) == before
        assert sorted(
            n.content for n in test_db.query(Note).filter_by(account_id=multi_id)
        ) == note_contents
        assert test_db.get(Location, boulder_id).account_id == multi_id
        assert test_db.get(Account, split.account_id) is None
        assert_no_orphans()
