"""
Edit-distance similarity between normalized names.

Uses Levenshtein distance scaled by the longer string's length.
"""

from typing import Optional

from entity_merge.matching.normalizer import normalize_name

# Scores at or above this (but not an exact match) are reported as NEAR_EXACT
# so true identity always sorts ahead of near-identity.
NEAR_EXACT_CUTOFF = 0.999
NEAR_EXACT = 0.99


def levenshtein_distance(s1: str, s2: str) -> int:
    """
    Calculate the Levenshtein (edit) distance between two strings.

    The Levenshtein distance is the minimum number of single-character
    edits (insertions, deletions, substitutions) needed to transform
    one string into another.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Edit distance (0 = identical)
    """
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))

    for i, c1 in enumerate(s1):
        current_row = [i + 1]

        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)

            current_row.append(min(insertions, deletions, substitutions))

        previous_row = current_row

    return previous_row[-1]


def similarity(s1: Optional[str], s2: Optional[str]) -> float:
    """
    Similarity between two already-normalized strings.

    Returns a value between 0.0 and 1.0. Identical strings (including two
    empty strings) score exactly 1.0; anything else that would round to 1.0
    is clamped to 0.99.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Similarity ratio (0.0 to 1.0)
    """
    s1 = s1 or ""
    s2 = s2 or ""

    if s1 == s2:
        return 1.0

    max_len = max(len(s1), len(s2))
    distance = levenshtein_distance(s1, s2)
    score = 1.0 - (distance / max_len)

    if score >= NEAR_EXACT_CUTOFF:
        return NEAR_EXACT
    return score


def name_similarity(name1: Optional[str], name2: Optional[str]) -> float:
    """Similarity of two raw account names after normalization."""
    return similarity(normalize_name(name1), normalize_name(name2))
