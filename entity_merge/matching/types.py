"""
Value types shared by the matching pipeline.

A location attached to an account snapshot is either a real Location row or
one synthesized from the account's legacy UDF address fields. The two cases
are separate classes so callers always know which one they hold.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class MatchBasis(str, Enum):
    """Why a cluster's members were grouped."""
    NAME = "name"
    ADDRESS = "address"


class GroupingMode(str, Enum):
    NAME = "name"
    ADDRESS = "address"
    BOTH = "both"

    @property
    def uses_name(self) -> bool:
        return self in (GroupingMode.NAME, GroupingMode.BOTH)

    @property
    def uses_address(self) -> bool:
        return self in (GroupingMode.ADDRESS, GroupingMode.BOTH)


@dataclass(frozen=True)
class AddressFields:
    """Plain address/contact fields, detached from any ORM row."""

    name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None

    def address_parts(self) -> Dict[str, Optional[str]]:
        """Parts in the shape normalize_address expects."""
        return {
            "address": self.address_line1,
            "city": self.city,
            "state": self.state,
            "zip": self.zip_code,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
        }


@dataclass(frozen=True)
class RealLocation:
    """A Location row from the locations table."""

    location_id: int
    fields: AddressFields
    kind: str = field(default="real", init=False)

    @property
    def name(self) -> Optional[str]:
        return self.fields.name

    def address_parts(self) -> Dict[str, Optional[str]]:
        return self.fields.address_parts()

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "location_id": self.location_id, **self.fields.to_dict()}


@dataclass(frozen=True)
class SynthesizedLocation:
    """A pseudo-location built from an account's UDF fields; has no row id."""

    account_id: int
    fields: AddressFields
    kind: str = field(default="synthesized", init=False)

    @property
    def name(self) -> Optional[str]:
        return self.fields.name

    def address_parts(self) -> Dict[str, Optional[str]]:
        return self.fields.address_parts()

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "location_id": None, **self.fields.to_dict()}


ResolvedLocation = Union[RealLocation, SynthesizedLocation]


@dataclass(frozen=True)
class AccountSnapshot:
    """Read-only view of an account and its resolved locations at scan time."""

    account_id: int
    name: str
    account_type: str
    status: Optional[str] = None
    primary_contact_name: Optional[str] = None
    primary_contact_email: Optional[str] = None
    sage_code: Optional[str] = None
    locations: Tuple[ResolvedLocation, ...] = ()

    @property
    def first_location(self) -> Optional[ResolvedLocation]:
        return self.locations[0] if self.locations else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.account_id,
            "name": self.name,
            "account_type": self.account_type,
            "status": self.status,
            "primary_contact_name": self.primary_contact_name,
            "primary_contact_email": self.primary_contact_email,
            "sage_code": self.sage_code,
            "locations": [loc.to_dict() for loc in self.locations],
        }


@dataclass(frozen=True)
class DuplicateCluster:
    """
    Accounts judged likely to be the same business.

    Created fresh per detection request and never mutated afterwards.
    """

    label: str
    members: Tuple[AccountSnapshot, ...]
    score: float
    match_basis: MatchBasis

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def account_ids(self) -> Tuple[int, ...]:
        return tuple(m.account_id for m in self.members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.label,
            "accounts": [m.to_dict() for m in self.members],
            "similarity_score": self.score,
            "match_type": self.match_basis.value,
        }
