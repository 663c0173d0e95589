"""
Topology mutator.

Moves a location between accounts:
- add_location_to_multi: a single-location account's only location joins a
  multi-location account and the emptied account is removed.
- remove_location_from_multi: a location is split out of a multi-location
  account into a brand-new single-location account.

Both check the account/location structure inside the transaction before
touching any row.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from entity_merge.core.errors import (
    InvariantViolation,
    MergeEngineError,
    NotFoundError,
    ValidationError,
)
from entity_merge.core.models import (
    Account,
    AccountType,
    ChangeActionType,
    ChangeEntityType,
    Location,
)
from entity_merge.services.base import ACCOUNT_DEPENDENTS, StructuralService

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_ACCOUNT_NAME = "New Account"
DEFAULT_COUNTRY_CODE = "US"


@dataclass
class AddLocationResult:
    location_id: int
    target_account_id: int
    source_account_id: int
    location_count: int
    source_account_deleted: bool
    reassigned: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SplitResult:
    account_id: int
    account_name: str
    location_id: int
    source_account_id: int
    source_account_demoted: bool
    reassigned: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def split_account_values(location: Location, source: Account, actor: Optional[Any] = None) -> Dict[str, Any]:
    """
    New single-location account for a location leaving a multi-location account.

    Contact details fall back to the old account; the address comes from the
    location alone.
    """
    created_by = getattr(actor, "user_id", None)
    return {
        "name": location.name or DEFAULT_SPLIT_ACCOUNT_NAME,
        "account_type": AccountType.SINGLE_LOCATION.value,
        "industry": source.industry,
        "status": source.status,
        "primary_contact_name": location.contact_name or source.primary_contact_name,
        "primary_contact_email": location.email or source.primary_contact_email,
        "primary_contact_phone": location.phone or source.primary_contact_phone,
        "notes": location.notes or source.notes,
        "sage_code": None,
        "pending_contract_sent": bool(location.pending_contract_sent),
        "udf_clinic_name": location.name,
        "udf_address_line1": location.address_line1,
        "udf_address_line2": location.address_line2,
        "udf_city": location.city,
        "udf_state": location.state,
        "udf_zipcode": location.zip_code,
        "udf_phone": location.phone,
        "udf_email": location.email,
        "udf_notes": location.notes,
        "udf_country_code": location.country or DEFAULT_COUNTRY_CODE,
        "created_by": str(created_by) if created_by is not None else None,
    }


class TopologyService(StructuralService):
    """Move locations into and out of multi-location accounts."""

    def add_location_to_multi(
        self,
        location_id: int,
        target_account_id: int,
        actor: Optional[Any] = None,
    ) -> AddLocationResult:
        """
        Move a single-location account's location into a multi-location account.

        The move (with the source account's agreements, activities and notes)
        commits first. Deleting the emptied source account is a separate,
        best-effort step: if it fails the move still stands and the result
        reports source_account_deleted=False.

        Raises:
            ValidationError: Missing ids
            NotFoundError: Location, its account or the target does not exist
            InvariantViolation: Target is not multi-location, is already the
                location's account, or the source owns other locations
        """
        if location_id is None or target_account_id is None:
            raise ValidationError(
                "Location id and target account id are required",
                invalid_params={"location_id": "required", "target_account_id": "required"},
            )

        moved = self.gateway.run_in_transaction(
            lambda: self._move_location_unit(location_id, target_account_id)
        )
        source_account_id = moved["source_account_id"]

        deleted = self._delete_empty_account(source_account_id)
        location_count = self.gateway.count_where(Location, "account_id", target_account_id)

        result = AddLocationResult(
            location_id=location_id,
            target_account_id=target_account_id,
            source_account_id=source_account_id,
            location_count=location_count,
            source_account_deleted=deleted,
            reassigned=moved["reassigned"],
        )
        logger.info(
            f"Moved location {location_id} from account {source_account_id} "
            f"to multi-location account {target_account_id} ({location_count} locations)"
        )
        self._audit(
            actor,
            action_type=ChangeActionType.ADD_LOCATION.value,
            entity_type=ChangeEntityType.LOCATION.value,
            entity_id=location_id,
            entity_name=moved["location_name"],
            description=(
                f"Moved location {location_id} to multi-location account "
                f'"{moved["target_account_name"]}"'
            ),
            details=result.to_dict(),
        )
        return result

    def _move_location_unit(self, location_id: int, target_account_id: int) -> Dict[str, Any]:
        location = self.gateway.find_by_id(Location, location_id, for_update=True)
        if location is None:
            raise NotFoundError("Location not found", entity_type="location", entity_id=location_id)

        source = self.gateway.find_by_id(Account, location.account_id, for_update=True)
        if source is None:
            raise NotFoundError("Source account not found", entity_type="account", entity_id=location.account_id)

        target = self.gateway.find_by_id(Account, target_account_id, for_update=True)
        if target is None:
            raise NotFoundError("Target account not found", entity_type="account", entity_id=target_account_id)

        if target.id == source.id:
            raise InvariantViolation(
                "Location already belongs to the target account",
                details={"location_id": location_id, "account_id": target.id},
            )
        if target.account_type != AccountType.MULTI_LOCATION.value:
            raise InvariantViolation(
                "Target account must be a multi-location account",
                details={"target_account_id": target.id, "account_type": target.account_type},
            )

        source_locations = self.gateway.count_where(Location, "account_id", source.id)
        if source_locations != 1:
            raise InvariantViolation(
                "Source account must have exactly one location",
                details={"source_account_id": source.id, "location_count": source_locations},
            )

        self.gateway.update_by_id(
            Location, location_id, {"account_id": target.id, "updated_at": datetime.utcnow()}
        )
        # Everything the source account owned belonged to its only location
        reassigned = self._reassign_account_dependents([source.id], target.id)

        return {
            "source_account_id": source.id,
            "target_account_name": target.name,
            "location_name": location.name,
            "reassigned": reassigned,
        }

    def _delete_empty_account(self, account_id: int) -> bool:
        """Delete an account only if it still owns nothing; failures are logged."""

        def unit() -> bool:
            account = self.gateway.find_by_id(Account, account_id, for_update=True)
            if account is None:
                return False
            if self.gateway.count_where(Location, "account_id", account_id):
                logger.warning(f"Account {account_id} gained locations again; not deleting it")
                return False
            for _, model in ACCOUNT_DEPENDENTS:
                if self.gateway.count_where(model, "account_id", account_id):
                    logger.warning(f"Account {account_id} still owns {model.__tablename__}; not deleting it")
                    return False
            return self.gateway.bulk_delete_where_in(Account, "id", [account_id]) > 0

        try:
            return self.gateway.run_in_transaction(unit)
        except SQLAlchemyError as e:
            logger.warning(f"Could not delete emptied account {account_id}: {e}")
            return False
        except MergeEngineError as e:
            logger.error(f"Could not delete emptied account {account_id}: {e.message}")
            return False

    def remove_location_from_multi(
        self,
        location_id: int,
        actor: Optional[Any] = None,
    ) -> SplitResult:
        """
        Split a location out of a multi-location account into a new account.

        The new account is created before the location is touched. The
        location's own agreements, activities and notes go with it. If the old
        account is left with a single location it becomes single-location.

        Raises:
            ValidationError: Missing id
            NotFoundError: Location or its account does not exist
            InvariantViolation: Account is not multi-location, or this is its
                last location
        """
        if location_id is None:
            raise ValidationError("Location id is required", invalid_params={"location_id": "required"})

        result = self.gateway.run_in_transaction(
            lambda: self._split_unit(location_id, actor)
        )

        logger.info(
            f"Split location {location_id} out of account {result.source_account_id} "
            f"into new account {result.account_id}"
            + (" (source demoted to single_location)" if result.source_account_demoted else "")
        )
        self._audit(
            actor,
            action_type=ChangeActionType.REMOVE_LOCATION.value,
            entity_type=ChangeEntityType.ACCOUNT.value,
            entity_id=result.account_id,
            entity_name=result.account_name,
            description=(
                f"Removed location {location_id} from account {result.source_account_id} "
                f'into new account "{result.account_name}"'
            ),
            details=result.to_dict(),
        )
        return result

    def _split_unit(self, location_id: int, actor: Optional[Any]) -> SplitResult:
        location = self.gateway.find_by_id(Location, location_id, for_update=True)
        if location is None:
            raise NotFoundError("Location not found", entity_type="location", entity_id=location_id)

        source = self.gateway.find_by_id(Account, location.account_id, for_update=True)
        if source is None:
            raise NotFoundError("Account not found", entity_type="account", entity_id=location.account_id)

        if source.account_type != AccountType.MULTI_LOCATION.value:
            raise InvariantViolation(
                "Location's account is not a multi-location account",
                details={"account_id": source.id, "account_type": source.account_type},
            )
        location_count = self.gateway.count_where(Location, "account_id", source.id)
        if location_count < 2:
            raise InvariantViolation(
                "Cannot remove the last location from a multi-location account",
                details={"account_id": source.id, "location_count": location_count},
            )

        source_id = source.id
        new_account = self.gateway.insert(Account, split_account_values(location, source, actor))
        new_account_id = new_account.id
        new_account_name = new_account.name

        self.gateway.update_by_id(
            Location,
            location_id,
            {"account_id": new_account_id, "is_primary": True, "updated_at": datetime.utcnow()},
        )
        reassigned = {
            label: self.gateway.bulk_update_where_in(
                model, "location_id", [location_id], {"account_id": new_account_id}
            )
            for label, model in ACCOUNT_DEPENDENTS
        }

        demoted = False
        if self.gateway.count_where(Location, "account_id", source_id) == 1:
            self.gateway.update_by_id(
                Account,
                source_id,
                {"account_type": AccountType.SINGLE_LOCATION.value, "updated_at": datetime.utcnow()},
            )
            demoted = True

        return SplitResult(
            account_id=new_account_id,
            account_name=new_account_name,
            location_id=location_id,
            source_account_id=source_id,
            source_account_demoted=demoted,
            reassigned=reassigned,
        )
