"""
Name matching helpers.

Case- and accent-insensitive normalization plus nickname equivalence groups
(e.g. ``["robert", "rob", "bob"]``) loaded from ``configs/name-groups.json``.

Usage:
    from scripts.lib.name_matching import load_equivalence_groups, are_variations
    table = load_equivalence_groups(path)
    are_variations("Bob", "Robert", table)  # True
"""
from __future__ import annotations

import json
import unicodedata
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from scripts.lib.errors import ConfigError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

NAME_GROUPS_HINT = (
    "Create configs/name-groups.json (or set NAME_GROUPS_PATH) containing a JSON "
    'array of name groups, e.g. [["robert", "rob", "bob"], ["william", "will", "bill"]]'
)


def normalize(text: Optional[str]) -> str:
    """Lowercase, strip accents and surrounding whitespace. Total on any input."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", str(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


class NameGroupTable:
    """Lookup from a normalized given name to its equivalence group."""

    def __init__(self, groups: Iterable[Iterable[str]] = ()):
        self._groups: List[Tuple[str, ...]] = []
        self._index: Dict[str, int] = {}
        for raw_group in groups:
            members = tuple(dict.fromkeys(normalize(n) for n in raw_group if normalize(n)))
            if not members:
                continue
            group_id = len(self._groups)
            for member in members:
                if member in self._index:
                    owner = self._groups[self._index[member]]
                    raise ConfigError(
                        f"Name '{member}' appears in more than one group "
                        f"({owner[0]!r} and {members[0]!r})",
                        hint="Each name may belong to at most one group",
                    )
                self._index[member] = group_id
            self._groups.append(members)

    def __len__(self) -> int:
        return len(self._groups)

    def group_of(self, name: str) -> Optional[Tuple[str, ...]]:
        group_id = self._index.get(normalize(name))
        if group_id is None:
            return None
        return self._groups[group_id]


def load_equivalence_groups(source: str | Path | None) -> NameGroupTable:
    """
    Load nickname groups from a JSON file.

    A missing or malformed file never raises: identity matching falls back to
    exact names only and a configuration warning is logged.
    """
    if source is None:
        logger.warning("No name-groups file configured; exact name matching only. %s",
                       NAME_GROUPS_HINT)
        return NameGroupTable()

    path = Path(source)
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            raw = json.load(f)
        if not isinstance(raw, list) or not all(isinstance(g, list) for g in raw):
            raise ConfigError("Expected a JSON array of arrays", config_path=str(path))
        if not all(isinstance(n, str) for g in raw for n in g):
            raise ConfigError("Every name must be a string", config_path=str(path))
        table = NameGroupTable(raw)
    except FileNotFoundError:
        logger.error("Name groups file not found: %s. %s", path, NAME_GROUPS_HINT)
        return NameGroupTable()
    except (OSError, json.JSONDecodeError, ConfigError) as e:
        logger.error("Could not load name groups from %s: %s. %s", path, e, NAME_GROUPS_HINT)
        return NameGroupTable()

    logger.info("Loaded %d name groups from %s", len(table), path)
    return table


def are_variations(name_a: Optional[str], name_b: Optional[str], table: NameGroupTable) -> bool:
    """True when two given names are equal or belong to the same nickname group."""
    a, b = normalize(name_a), normalize(name_b)
    if not a or not b:
        return False
    if a == b:
        return True
    group_a, group_b = table.group_of(a), table.group_of(b)
    return group_a is not None and group_a == group_b


def canonical_form_of(name: str, table: NameGroupTable) -> str:
    group = table.group_of(name)
    return group[0] if group else name
