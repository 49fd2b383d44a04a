"""
Source category name → canonical target category name.
"""

from typing import Dict, List, Optional

IGNORED_CATEGORIES = frozenset({"Canceled", "Other"})

CATEGORY_MAP: Dict[str, str] = {
    "Festivals": "Festival",
    "Festival": "Festival",
    "DayWorkshop": "Class",
    "Workshop": "Class",
    "Trips-Hosted": "Trip",
    "Trip": "Trip",
    "Virtual": "Virtual",
    "Party/Gathering": "Gathering",
    "Party": "Gathering",
    "Gathering": "Gathering",
    "Live Orchestra": "Orchestra",
    "Orchestra": "Orchestra",
    "Concert/Show": "Concert",
    "Concert": "Concert",
    "Show": "Concert",
    "Forum/RoundTable/Labs": "Forum",
    "Forum": "Forum",
    "First Timer Friendly": "Class",
}

# Source spellings that appear on the calendar but not in CATEGORY_MAP
CATEGORY_ALIASES: Dict[str, List[str]] = {
    "Class": ["Drop-in Class", "Progressive Class"],
}

_SUBSTRING_RULES = (
    (("class", "workshop"), "Class"),
    (("milonga",), "Milonga"),
    (("practica",), "Practica"),
)


def is_ignored_category(source_name: str) -> bool:
    return source_name in IGNORED_CATEGORIES


def map_to_canonical_category(source_name: Optional[str]) -> Optional[str]:
    """
    Map a source category name to its canonical target name.

    Substring rules for the three essential categories win, then the ignore
    set, then an exact lookup in CATEGORY_MAP.

    Returns:
        Canonical name, or None when ignored or unmapped
    """
    if not source_name:
        return None

    lowered = source_name.lower()
    for needles, canonical in _SUBSTRING_RULES:
        if any(needle in lowered for needle in needles):
            return canonical

    if is_ignored_category(source_name):
        return None

    return CATEGORY_MAP.get(source_name)


def source_names_for(canonical_name: str) -> List[str]:
    """All source names that resolve to ``canonical_name``, itself included."""
    names = [canonical_name]
    names.extend(source for source, target in CATEGORY_MAP.items() if target == canonical_name)
    names.extend(CATEGORY_ALIASES.get(canonical_name, []))
    # Preserve order, drop duplicates
    return list(dict.fromkeys(names))
