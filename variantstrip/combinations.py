"""Keyword combination helpers used to enumerate the variants a material can reach."""

from collections.abc import Sequence


def get_all_combinations(tokens: Sequence[str]) -> list[list[str]]:
    """Enumerate every proper, non-empty subset of a keyword list.

    Each subset is selected by a bitmask where bit j set means token j is excluded.
    Masks run from 1 to 2**N - 2, so the full list (mask 0) and the empty list
    (mask 2**N - 1) are never produced. Token order is preserved within each subset.

    Args:
        tokens (Sequence[str]): Ordered, unique keyword tokens.

    Returns:
        list[list[str]]: 2**N - 2 subsets in ascending mask order.

    Example:
        >>> get_all_combinations(["a", "b", "c"])
        [['b', 'c'], ['a', 'c'], ['c'], ['a', 'b'], ['b'], ['a']]
    """
    count = len(tokens)
    return [
        [token for j, token in enumerate(tokens) if not mask & (1 << j)]
        for mask in range(1, (1 << count) - 1)
    ]


def local_combinations(enabled: Sequence[str]) -> list[list[str]]:
    """Subsets of a material's enabled local keywords, full list included.

    Args:
        enabled (Sequence[str]): Enabled local keywords.

    Returns:
        list[list[str]]: Proper subsets followed by the full list, or [[]] if nothing is enabled.
    """
    if not enabled:
        return [[]]
    return get_all_combinations(enabled) + [list(enabled)]


def global_combinations(global_keywords: Sequence[str]) -> list[list[str]]:
    """Subsets of the global keyword list, full and empty lists included.

    Args:
        global_keywords (Sequence[str]): Known global keywords.

    Returns:
        list[list[str]]: Proper subsets, then the full list, then the empty list.
    """
    if not global_keywords:
        return [[]]
    return get_all_combinations(global_keywords) + [list(global_keywords), []]
