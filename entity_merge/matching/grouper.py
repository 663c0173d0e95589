"""
Candidate grouping of likely-duplicate accounts.

Two passes:
1. Name clustering: greedy single-link over normalized names. Each
   unassigned account seeds a cluster and pulls in every later unassigned
   account scoring at or above the threshold against it. The cluster score
   is the weakest link observed.
2. Address clustering: accounts not already placed by name are grouped by
   the exact normalized address key of their first location.

Which pairs get compared is decided by a PairGenerator. The default
compares every pair (O(n²)), which is fine for a few thousand accounts;
FirstTokenBlocking only compares names sharing a first token and is the
drop-in replacement when volumes grow.
"""
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set

from entity_merge.matching.normalizer import address_label, normalize_address, normalize_name
from entity_merge.matching.similarity import similarity
from entity_merge.matching.types import (
    AccountSnapshot,
    DuplicateCluster,
    GroupingMode,
    MatchBasis,
)

logger = logging.getLogger(__name__)

DEFAULT_NAME_THRESHOLD = 0.70
DEFAULT_ADDRESS_SCORE = 0.85


class PairGenerator(Protocol):
    """Decides which later positions a seed account is compared against."""

    def build(self, keys: Sequence[str]) -> Callable[[int], Iterable[int]]:
        ...


class AllPairs:
    """Compare each seed with every later account."""

    def build(self, keys: Sequence[str]) -> Callable[[int], Iterable[int]]:
        total = len(keys)
        return lambda index: range(index + 1, total)


class FirstTokenBlocking:
    """Compare only accounts whose normalized names share a first token."""

    def build(self, keys: Sequence[str]) -> Callable[[int], Iterable[int]]:
        blocks: Dict[str, List[int]] = {}
        for position, key in enumerate(keys):
            token = key.split(" ", 1)[0] if key else ""
            blocks.setdefault(token, []).append(position)

        def later(index: int) -> Iterable[int]:
            key = keys[index]
            token = key.split(" ", 1)[0] if key else ""
            return (p for p in blocks.get(token, ()) if p > index)

        return later


class CandidateGrouper:
    """
    Produce duplicate clusters from a snapshot of accounts.

    Pure read-and-compute: no I/O, no mutation of its inputs.
    """

    def __init__(
        self,
        name_threshold: float = DEFAULT_NAME_THRESHOLD,
        address_score: float = DEFAULT_ADDRESS_SCORE,
        pair_generator: Optional[PairGenerator] = None,
    ):
        self.name_threshold = name_threshold
        self.address_score = address_score
        self.pair_generator = pair_generator or AllPairs()

    def group(
        self,
        accounts: Sequence[AccountSnapshot],
        mode: GroupingMode = GroupingMode.NAME,
    ) -> List[DuplicateCluster]:
        """
        Cluster accounts.

        Args:
            accounts: Account snapshots with resolved locations
            mode: name, address or both

        Returns:
            Clusters of size >= 2, highest score first, larger clusters first on ties
        """
        start = time.time()
        mode = GroupingMode(mode)
        assigned: Set[int] = set()
        clusters: List[DuplicateCluster] = []

        if mode.uses_name:
            clusters.extend(self._cluster_by_name(accounts, assigned))
        if mode.uses_address:
            clusters.extend(self._cluster_by_address(accounts, assigned))

        clusters.sort(key=lambda c: (-c.score, -c.size))

        logger.debug(
            f"Grouped {len(accounts)} accounts into {len(clusters)} clusters "
            f"(mode={mode.value}) in {time.time() - start:.2f}s"
        )
        return clusters

    def _cluster_by_name(
        self, accounts: Sequence[AccountSnapshot], assigned: Set[int]
    ) -> List[DuplicateCluster]:
        keys = [normalize_name(account.name) for account in accounts]
        later_positions = self.pair_generator.build(keys)
        clusters: List[DuplicateCluster] = []

        for i, seed in enumerate(accounts):
            if seed.account_id in assigned:
                continue

            members = [seed]
            weakest = 1.0

            for j in later_positions(i):
                other = accounts[j]
                if other.account_id in assigned or other.account_id == seed.account_id:
                    continue

                score = similarity(keys[i], keys[j])
                if score >= self.name_threshold:
                    members.append(other)
                    assigned.add(other.account_id)
                    weakest = min(weakest, score)

            if len(members) >= 2:
                assigned.add(seed.account_id)
                clusters.append(
                    DuplicateCluster(
                        label=seed.name,
                        members=tuple(members),
                        score=weakest,
                        match_basis=MatchBasis.NAME,
                    )
                )

        return clusters

    def _cluster_by_address(
        self, accounts: Sequence[AccountSnapshot], assigned: Set[int]
    ) -> List[DuplicateCluster]:
        by_key: Dict[str, List[AccountSnapshot]] = {}

        for account in accounts:
            if account.account_id in assigned:
                continue
            location = account.first_location
            if location is None:
                continue
            key = normalize_address(location.address_parts())
            if not key:
                continue
            by_key.setdefault(key, []).append(account)

        clusters: List[DuplicateCluster] = []
        for key, members in by_key.items():
            if len(members) < 2:
                continue
            assigned.update(m.account_id for m in members)
            clusters.append(
                DuplicateCluster(
                    label=f"Address match: {address_label(key)}",
                    members=tuple(members),
                    score=self.address_score,
                    match_basis=MatchBasis.ADDRESS,
                )
            )

        return clusters
