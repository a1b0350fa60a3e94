from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from catalog_sync.core_definitions import ChangeSet

# Insertion-ordered key -> text mapping. None marks a key without text yet.
TSet = Dict[str, Optional[str]]


class CompareMode(Enum):
    COMPARE_KEYS = "COMPARE_KEYS"
    COMPARE_KEYS_AND_NULL_VALUES = "COMPARE_KEYS_AND_NULL_VALUES"
    COMPARE_VALUES = "COMPARE_VALUES"


def left_minus_right(left: TSet, right: TSet) -> TSet:
    """
    Return the entries of ``left`` whose keys do not exist in ``right``.

    Args:
        left: The mapping to filter.
        right: The mapping whose keys are removed from ``left``.

    Returns:
        A new mapping in ``left``'s order with ``left``'s values.
    """
    return {key: value for key, value in left.items() if key not in right}


def select_left_distinct(left: TSet, right: TSet, mode: CompareMode) -> TSet:
    """
    Select the entries of ``left`` that differ from ``right`` under ``mode``.

    - COMPARE_KEYS: the key is missing from ``right``.
    - COMPARE_KEYS_AND_NULL_VALUES: the key is missing from ``right`` or mapped to None there.
    - COMPARE_VALUES: the key exists in both but the values are not equal.

    Values are always taken from ``left`` and ``left``'s order is preserved.
    """
    selected: TSet = {}
    for key, value in left.items():
        if mode is CompareMode.COMPARE_KEYS:
            distinct = key not in right
        elif mode is CompareMode.COMPARE_KEYS_AND_NULL_VALUES:
            distinct = key not in right or right[key] is None
        elif mode is CompareMode.COMPARE_VALUES:
            distinct = key in right and right[key] != value
        else:
            raise ValueError(f"Unknown compare mode: {mode}")
        if distinct:
            selected[key] = value
    return selected


def join_results_preserve_order(
        translate_results: TSet,
        change_set: "ChangeSet",
        old_target: TSet,
        src: TSet
) -> TSet:
    """
    Build the new target in source order.

    Fresh results win over the old target. Keys that have neither a fresh
    result nor an old value are left out. ``old_target`` must already be
    pruned of ``change_set.deleted``.
    """
    joined: TSet = {}
    for key in src:
        if key in translate_results:
            joined[key] = translate_results[key]
        elif key in old_target:
            joined[key] = old_target[key]
    return joined
