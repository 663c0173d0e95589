"""
Merge executor.

Consolidates duplicate accounts into one surviving multi-location account,
and merges two locations into one. Every public operation is a single unit
of work: preconditions are checked against current rows inside the
transaction (clustering results may be stale), all writes are set-based,
and the change log is written only after the commit.

Merges are irreversible; results carry per-table counts so an operator can
sanity-check what moved.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from entity_merge.core.errors import InvariantViolation, NotFoundError, ValidationError
from entity_merge.core.models import (
    Account,
    AccountStatus,
    AccountType,
    Activity,
    Agreement,
    ChangeActionType,
    ChangeEntityType,
    Location,
    LocationContact,
    Note,
)
from entity_merge.services.base import StructuralService

logger = logging.getLogger(__name__)

NOTES_SEPARATOR = "\n\n--- Merged from previous location ---\n\n"

# Location fields merged as target-or-source
MERGED_LOCATION_FIELDS = (
    "name",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "zip_code",
    "country",
    "phone",
    "email",
    "contact_name",
    "contact_title",
    "clinic_code",
    "sage_code",
    "agreement_document_url",
    "license_document_url",
    "pending_contract_sent",
)

# Tables whose rows follow a location when it is merged away
LOCATION_DEPENDENTS = (
    ("agreements", Agreement),
    ("activities", Activity),
    ("notes", Note),
    ("location_contacts", LocationContact),
)


@dataclass
class MergeResult:
    merged_account_id: int
    merged_account_name: str
    accounts_merged: int
    location_count: int
    agreements_count: int
    activities_count: int
    notes_count: int
    locations_created: int = 0
    deleted_account_ids: List[int] = field(default_factory=list)
    reassigned: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LocationMergeResult:
    target_location_id: int
    source_location_id: int
    source_account_id: int
    target_account_id: int
    # deleted, demoted or unchanged
    source_account_outcome: str
    reassigned: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def udf_location_values(account: Account) -> Dict[str, Any]:
    """Location row materialized from an account's legacy UDF fields."""
    return {
        "account_id": account.id,
        "name": account.name,
        "address_line1": account.udf_address_line1,
        "address_line2": account.udf_address_line2,
        "city": account.udf_city,
        "state": account.udf_state,
        "zip_code": account.udf_zipcode,
        "country": account.udf_country_code or "US",
        "phone": account.udf_phone,
        "email": account.primary_contact_email,
        "contact_name": account.primary_contact_name,
        "is_primary": True,
        "status": AccountStatus.ACTIVE.value,
    }


def merge_location_fields(target: Location, source: Location) -> Dict[str, Any]:
    """
    Field values for the surviving location.

    The target keeps every value it has; gaps are filled from the source.
    Notes from both sides are kept, target first.
    """
    merged = {
        name: getattr(target, name) or getattr(source, name)
        for name in MERGED_LOCATION_FIELDS
    }
    notes = [n for n in (target.notes, source.notes) if n]
    merged["notes"] = NOTES_SEPARATOR.join(notes) if notes else None
    return merged


def _distinct_ids(ids: Sequence[Any]) -> List[int]:
    try:
        return list(dict.fromkeys(int(i) for i in ids))
    except (TypeError, ValueError):
        raise ValidationError(
            "Account ids must be integers",
            invalid_params={"account_ids": "must be a list of integers"},
        )


class MergeService(StructuralService):
    """Merge accounts and locations."""

    def merge_accounts(
        self,
        account_ids: Sequence[int],
        primary_id: Optional[int] = None,
        actor: Optional[Any] = None,
    ) -> MergeResult:
        """
        Fold single-location accounts into one multi-location account.

        The primary may be single- or multi-location; every other account
        must be single-location.

        Args:
            account_ids: Accounts to merge (at least two distinct ids)
            primary_id: Surviving account; defaults to the first id
            actor: Operator, for the change log

        Returns:
            MergeResult with the counts now owned by the primary

        Raises:
            ValidationError: Fewer than two ids, or primary not among them
            NotFoundError: An id does not resolve to an account
            InvariantViolation: A non-primary account is not single-location
        """
        ids = _distinct_ids(account_ids or [])
        if len(ids) < 2:
            raise ValidationError(
                "At least two accounts are required to merge",
                invalid_params={"account_ids": "need at least two distinct ids"},
            )
        if primary_id is None:
            primary_id = ids[0]
        elif primary_id not in ids:
            raise ValidationError(
                "Primary account must be one of the accounts being merged",
                invalid_params={"primary_account_id": "not in account_ids"},
            )

        result = self.gateway.run_in_transaction(
            lambda: self._merge_accounts_unit(ids, primary_id)
        )

        logger.info(
            f"Merged accounts {result.deleted_account_ids} into {primary_id}: "
            f"{result.location_count} locations, {result.agreements_count} agreements, "
            f"{result.activities_count} activities, {result.notes_count} notes"
        )
        self._audit(
            actor,
            action_type=ChangeActionType.MERGE_ACCOUNTS.value,
            entity_type=ChangeEntityType.ACCOUNT.value,
            entity_id=result.merged_account_id,
            entity_name=result.merged_account_name,
            description=(
                f"Merged {result.accounts_merged} accounts into "
                f'"{result.merged_account_name}"'
            ),
            details={
                "merged_account_ids": ids,
                "primary_account_id": primary_id,
                "deleted_account_ids": result.deleted_account_ids,
                "location_count": result.location_count,
                "locations_created": result.locations_created,
                "reassigned": result.reassigned,
            },
        )
        return result

    def _merge_accounts_unit(self, ids: List[int], primary_id: int) -> MergeResult:
        accounts = self.gateway.find_many_by_ids(Account, ids, for_update=True)
        found = {account.id for account in accounts}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError(
                "Account not found",
                entity_type="account",
                entity_id=missing[0],
                details={"missing_ids": missing},
            )

        # Only the primary may already be multi-location
        not_single = [
            account.id
            for account in accounts
            if account.id != primary_id
            and account.account_type != AccountType.SINGLE_LOCATION.value
        ]
        if not_single:
            raise InvariantViolation(
                "Only single-location accounts can be merged into another account",
                details={"account_ids": not_single},
            )

        primary = next(account for account in accounts if account.id == primary_id)
        primary_name = primary.name
        others = [i for i in ids if i != primary_id]

        # Materialize UDF-only addresses so they survive as Location rows
        with_rows = {row.account_id for row in self.gateway.find_where_in(Location, "account_id", ids)}
        created = 0
        for account in accounts:
            if account.id not in with_rows and account.has_udf_address():
                self.gateway.insert(Location, udf_location_values(account))
                created += 1

        reassigned = {
            "locations": self.gateway.bulk_update_where_in(
                Location, "account_id", others, {"account_id": primary_id}
            )
        }
        reassigned.update(self._reassign_account_dependents(others, primary_id))

        self.gateway.update_by_id(
            Account,
            primary_id,
            {"account_type": AccountType.MULTI_LOCATION.value, "updated_at": datetime.utcnow()},
        )
        self.gateway.bulk_delete_where_in(Account, "id", others)

        return MergeResult(
            merged_account_id=primary_id,
            merged_account_name=primary_name,
            accounts_merged=len(ids),
            location_count=self.gateway.count_where(Location, "account_id", primary_id),
            agreements_count=self.gateway.count_where(Agreement, "account_id", primary_id),
            activities_count=self.gateway.count_where(Activity, "account_id", primary_id),
            notes_count=self.gateway.count_where(Note, "account_id", primary_id),
            locations_created=created,
            deleted_account_ids=others,
            reassigned=reassigned,
        )

    def merge_locations(
        self,
        source_id: int,
        target_id: int,
        actor: Optional[Any] = None,
    ) -> LocationMergeResult:
        """
        Merge the source location into the target and delete the source.

        Afterwards the source's former account is re-evaluated: with no
        locations left it is deleted (its remaining records move to the
        target's account), with one left it becomes single-location.

        Raises:
            ValidationError: Missing ids or source == target
            NotFoundError: Either location does not exist
        """
        if source_id is None or target_id is None:
            raise ValidationError(
                "Source and target location ids are required",
                invalid_params={"source_location_id": "required", "target_location_id": "required"},
            )
        if source_id == target_id:
            raise ValidationError(
                "Cannot merge a location with itself",
                invalid_params={"target_location_id": "must differ from source_location_id"},
            )

        result = self.gateway.run_in_transaction(
            lambda: self._merge_locations_unit(source_id, target_id)
        )

        logger.info(
            f"Merged location {source_id} into {target_id}; "
            f"source account {result.source_account_id} {result.source_account_outcome}"
        )
        self._audit(
            actor,
            action_type=ChangeActionType.MERGE_LOCATIONS.value,
            entity_type=ChangeEntityType.LOCATION.value,
            entity_id=target_id,
            description=f"Merged location {source_id} into location {target_id}",
            details=result.to_dict(),
        )
        return result

    def _merge_locations_unit(self, source_id: int, target_id: int) -> LocationMergeResult:
        source = self.gateway.find_by_id(Location, source_id, for_update=True)
        if source is None:
            raise NotFoundError("Source location not found", entity_type="location", entity_id=source_id)
        target = self.gateway.find_by_id(Location, target_id, for_update=True)
        if target is None:
            raise NotFoundError("Target location not found", entity_type="location", entity_id=target_id)

        source_account_id = source.account_id
        target_account_id = target.account_id

        patch = merge_location_fields(target, source)
        patch["updated_at"] = datetime.utcnow()
        self.gateway.update_by_id(Location, target_id, patch)

        reassigned = {}
        for label, model in LOCATION_DEPENDENTS:
            move = {"location_id": target_id}
            if model is not LocationContact:
                move["account_id"] = target_account_id
            reassigned[label] = self.gateway.bulk_update_where_in(
                model, "location_id", [source_id], move
            )

        self.gateway.bulk_delete_where_in(Location, "id", [source_id])

        outcome = self._settle_account(source_account_id, target_account_id)

        return LocationMergeResult(
            target_location_id=target_id,
            source_location_id=source_id,
            source_account_id=source_account_id,
            target_account_id=target_account_id,
            source_account_outcome=outcome,
            reassigned=reassigned,
        )

    def _settle_account(self, account_id: int, fallback_account_id: int) -> str:
        """Re-establish the location-count rule for an account that lost a location."""
        remaining = self.gateway.count_where(Location, "account_id", account_id)

        if remaining == 0:
            self._reassign_account_dependents([account_id], fallback_account_id)
            self.gateway.bulk_delete_where_in(Account, "id", [account_id])
            return "deleted"

        if remaining == 1:
            account = self.gateway.find_by_id(Account, account_id, for_update=True)
            if account is not None and account.account_type != AccountType.SINGLE_LOCATION.value:
                self.gateway.update_by_id(
                    Account,
                    account_id,
                    {"account_type": AccountType.SINGLE_LOCATION.value, "updated_at": datetime.utcnow()},
                )
                return "demoted"

        return "unchanged"
