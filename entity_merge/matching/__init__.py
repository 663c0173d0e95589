"""Duplicate detection: normalization, similarity scoring and clustering."""

from entity_merge.matching.grouper import AllPairs, CandidateGrouper, FirstTokenBlocking
from entity_merge.matching.normalizer import normalize_address, normalize_name
from entity_merge.matching.similarity import levenshtein_distance, name_similarity, similarity
from entity_merge.matching.types import (
    AccountSnapshot,
    AddressFields,
    DuplicateCluster,
    GroupingMode,
    MatchBasis,
    RealLocation,
    ResolvedLocation,
    SynthesizedLocation,
)

__all__ = [
    "AccountSnapshot",
    "AddressFields",
    "AllPairs",
    "CandidateGrouper",
    "DuplicateCluster",
    "FirstTokenBlocking",
    "GroupingMode",
    "MatchBasis",
    "RealLocation",
    "ResolvedLocation",
    "SynthesizedLocation",
    "levenshtein_distance",
    "name_similarity",
    "normalize_address",
    "normalize_name",
    "similarity",
]
