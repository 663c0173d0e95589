"""
Read-only lookups backing the operator's data tools.

- multi-location accounts to move a location into
- location search (by location fields or by account name)
- integrity scan: dependent rows pointing at missing parents, and accounts
  whose type disagrees with their location count
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from entity_merge.core.models import (
    ACCOUNT_SCOPED_MODELS,
    LOCATION_SCOPED_MODELS,
    Account,
    AccountStatus,
    AccountType,
    Location,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100
ACCOUNT_NAME_SEARCH_LIMIT = 50


def location_to_dict(location: Location, account: Optional[Account] = None) -> Dict[str, Any]:
    return {
        "id": location.id,
        "account_id": location.account_id,
        "name": location.name,
        "address_line1": location.address_line1,
        "address_line2": location.address_line2,
        "city": location.city,
        "state": location.state,
        "zip_code": location.zip_code,
        "country": location.country,
        "phone": location.phone,
        "email": location.email,
        "contact_name": location.contact_name,
        "contact_title": location.contact_title,
        "is_primary": location.is_primary,
        "status": location.status,
        "notes": location.notes,
        "clinic_code": location.clinic_code,
        "sage_code": location.sage_code,
        "account_name": account.name if account is not None else "Unknown",
        "account_type": (
            account.account_type if account is not None else AccountType.SINGLE_LOCATION.value
        ),
    }


class LookupService:
    """Queries used while an operator decides what to merge or move."""

    def __init__(self, db: Session):
        self.db = db

    def list_multi_location_accounts(self, status: Optional[str] = AccountStatus.ACTIVE.value) -> List[Dict[str, Any]]:
        """Multi-location accounts ordered by name, with their location counts."""
        location_count = (
            self.db.query(Location.account_id, func.count(Location.id).label("n"))
            .group_by(Location.account_id)
            .subquery()
        )
        query = (
            self.db.query(Account, func.coalesce(location_count.c.n, 0))
            .outerjoin(location_count, location_count.c.account_id == Account.id)
            .filter(Account.account_type == AccountType.MULTI_LOCATION.value)
        )
        if status:
            query = query.filter(Account.status == status)

        return [
            {
                "id": account.id,
                "name": account.name,
                "account_type": account.account_type,
                "location_count": int(count),
            }
            for account, count in query.order_by(Account.name, Account.id).all()
        ]

    def search_locations(self, q: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
        """
        Case-insensitive search over location name/address/city/state/zip,
        plus every location of accounts whose name matches.

        Returns:
            Distinct locations with their account's name and type
        """
        pattern = f"%{q.strip()}%"

        by_location = (
            self.db.query(Location, Account)
            .join(Account, Account.id == Location.account_id)
            .filter(
                or_(
                    Location.name.ilike(pattern),
                    Location.address_line1.ilike(pattern),
                    Location.city.ilike(pattern),
                    Location.state.ilike(pattern),
                    Location.zip_code.ilike(pattern),
                )
            )
            .order_by(Location.id)
            .limit(limit)
            .all()
        )

        account_ids = [
            row.id
            for row in self.db.query(Account.id)
            .filter(Account.name.ilike(pattern))
            .order_by(Account.id)
            .limit(ACCOUNT_NAME_SEARCH_LIMIT)
            .all()
        ]
        by_account = []
        if account_ids:
            by_account = (
                self.db.query(Location, Account)
                .join(Account, Account.id == Location.account_id)
                .filter(Location.account_id.in_(account_ids))
                .order_by(Location.id)
                .limit(limit)
                .all()
            )

        seen = {}
        for location, account in list(by_location) + list(by_account):
            seen.setdefault(location.id, location_to_dict(location, account))

        logger.debug(f"Location search {q!r}: {len(seen)} results")
        return list(seen.values())

    def integrity_report(self) -> Dict[str, Any]:
        """
        Scan for orphaned dependents and account-type mismatches.

        Orphans should never exist; a non-empty "orphans" section means a
        structural operation was bypassed or a transaction was not honoured.
        """
        orphans: Dict[str, List[int]] = {}

        dangling_locations = self._missing_parent(Location, Location.account_id, Account)
        if dangling_locations:
            orphans["locations.account_id"] = dangling_locations

        for model in ACCOUNT_SCOPED_MODELS:
            ids = self._missing_parent(model, model.account_id, Account)
            if ids:
                orphans[f"{model.__tablename__}.account_id"] = ids

        for model in LOCATION_SCOPED_MODELS:
            ids = self._missing_parent(model, model.location_id, Location)
            if ids:
                orphans[f"{model.__tablename__}.location_id"] = ids

        counts = dict(
            self.db.query(Location.account_id, func.count(Location.id))
            .group_by(Location.account_id)
            .all()
        )
        type_mismatches = []
        for account in self.db.query(Account).order_by(Account.id).all():
            n = counts.get(account.id, 0)
            if account.account_type == AccountType.MULTI_LOCATION.value and n < 1:
                type_mismatches.append({"account_id": account.id, "account_type": account.account_type, "location_count": n})
            elif account.account_type == AccountType.SINGLE_LOCATION.value and n > 1:
                type_mismatches.append({"account_id": account.id, "account_type": account.account_type, "location_count": n})

        if orphans:
            logger.error(f"Integrity scan found orphaned rows: {orphans}")

        return {
            "ok": not orphans,
            "orphans": orphans,
            "type_mismatches": type_mismatches,
        }

    def _missing_parent(self, model, fk_column, parent) -> List[int]:
        rows = (
            self.db.query(model.id)
            .outerjoin(parent, parent.id == fk_column)
            .filter(fk_column.isnot(None), parent.id.is_(None))
            .order_by(model.id)
            .all()
        )
        return [row.id for row in rows]
