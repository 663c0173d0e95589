"""
Similarity candidate detection.

Loads the account snapshot the grouper works on: each candidate account with
its locations resolved either to real Location rows or, when an account has
none, to a location synthesized from its legacy UDF address fields.
"""
import logging
from typing import Dict, List, Optional, Sequence

from entity_merge.core.config import Settings, get_settings
from entity_merge.core.gateway import PersistenceGateway
from entity_merge.core.models import Account, Location
from entity_merge.matching.grouper import CandidateGrouper, PairGenerator
from entity_merge.matching.types import (
    AccountSnapshot,
    AddressFields,
    DuplicateCluster,
    GroupingMode,
    RealLocation,
    ResolvedLocation,
    SynthesizedLocation,
)

logger = logging.getLogger(__name__)


def real_location(location: Location) -> RealLocation:
    return RealLocation(
        location_id=location.id,
        fields=AddressFields(
            name=location.name,
            address_line1=location.address_line1,
            address_line2=location.address_line2,
            city=location.city,
            state=location.state,
            zip_code=location.zip_code,
        ),
    )


def synthesized_location(account: Account) -> Optional[SynthesizedLocation]:
    """Build a pseudo-location from UDF fields, or None if they are empty."""
    if not (
        account.udf_address_line1
        or account.udf_city
        or account.udf_state
        or account.udf_zipcode
    ):
        return None

    return SynthesizedLocation(
        account_id=account.id,
        fields=AddressFields(
            name=account.udf_clinic_name or account.name,
            address_line1=account.udf_address_line1,
            address_line2=account.udf_address_line2,
            city=account.udf_city,
            state=account.udf_state,
            zip_code=account.udf_zipcode,
        ),
    )


def resolve_locations(
    account: Account, rows: Sequence[Location]
) -> tuple:
    """Real rows when the account has any, otherwise the UDF fallback."""
    if rows:
        return tuple(real_location(row) for row in rows)
    fallback = synthesized_location(account)
    return (fallback,) if fallback is not None else ()


def build_snapshot(account: Account, locations: Sequence[ResolvedLocation]) -> AccountSnapshot:
    return AccountSnapshot(
        account_id=account.id,
        name=account.name,
        account_type=account.account_type,
        status=account.status,
        primary_contact_name=account.primary_contact_name,
        primary_contact_email=account.primary_contact_email,
        sage_code=account.sage_code,
        locations=tuple(locations),
    )


class SimilarityService:
    """Finds clusters of accounts that probably describe the same business."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        settings: Optional[Settings] = None,
        pair_generator: Optional[PairGenerator] = None,
    ):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.grouper = CandidateGrouper(
            name_threshold=self.settings.name_similarity_threshold,
            address_score=self.settings.address_match_score,
            pair_generator=pair_generator,
        )

    def load_snapshots(self) -> List[AccountSnapshot]:
        """
        Read candidate accounts (ordered by name) with resolved locations.

        Filtering by type and status follows the configured candidate
        settings; an unset filter means "any".
        """
        accounts = self.gateway.find_where(
            Account,
            order_by="name",
            account_type=self.settings.candidate_account_type,
            status=self.settings.candidate_account_status,
        )
        if not accounts:
            return []

        rows_by_account: Dict[int, List[Location]] = {}
        for row in self.gateway.find_where_in(Location, "account_id", [a.id for a in accounts]):
            rows_by_account.setdefault(row.account_id, []).append(row)

        return [
            build_snapshot(account, resolve_locations(account, rows_by_account.get(account.id, [])))
            for account in accounts
        ]

    def find_candidates(self, mode: GroupingMode = GroupingMode.NAME) -> List[DuplicateCluster]:
        """
        Detect duplicate clusters.

        Args:
            mode: name, address or both

        Returns:
            Clusters sorted by score then size, both descending
        """
        snapshots = self.load_snapshots()
        clusters = self.grouper.group(snapshots, GroupingMode(mode))
        logger.info(
            f"Similarity scan (mode={GroupingMode(mode).value}): "
            f"{len(snapshots)} accounts, {len(clusters)} candidate groups"
        )
        return clusters
