"""
Identity Reconciler
===================

Joins three namespaces that never agree on spelling:

  roster (org chart display names)
    → user lookup table (free-text name → GitHub login / email / access flags)
      → platform records (Copilot seats keyed by login, Cursor rows keyed by email)

Roster inclusion is the only fuzzy step: exact normalized name, or same
surname plus an equal-or-nickname given name. Names with a single token never
fuzzy-match. Surnames are never fuzzy, so people whose directory surname
differs from the lookup table (e.g. a maiden name) are missed; that is the
accepted precision/recall trade-off.

Platform linking is exact: login for Copilot, case-insensitive email for Cursor.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from models.metrics_models import ActivityRecord, LookupUser, RosterPerson, SeatRecord
from scripts.lib.logger import setup_logger
from scripts.lib.name_matching import NameGroupTable, are_variations, normalize

logger = setup_logger(__name__)


@dataclass
class RosterIndex:
    """Flattened org chart."""
    names: Set[str] = field(default_factory=set)
    people: Dict[str, RosterPerson] = field(default_factory=dict)
    total_people: int = 0


@dataclass
class ReconciledUser:
    user: LookupUser
    roster_name: Optional[str] = None
    seat: Optional[SeatRecord] = None
    activity: List[ActivityRecord] = field(default_factory=list)


def flatten_roster(roots: Iterable[RosterPerson]) -> RosterIndex:
    """Depth-first walk of every node; a visited set guards against cycles."""
    index = RosterIndex()
    visited: Set[int] = set()
    stack = list(reversed(list(roots)))

    while stack:
        person = stack.pop()
        if id(person) in visited:
            logger.warning("Roster cycle detected at '%s'; node skipped", person.name)
            continue
        visited.add(id(person))
        index.total_people += 1

        key = normalize(person.name)
        if key:
            index.names.add(key)
            index.people.setdefault(key, person)
        stack.extend(reversed(person.direct_reports))

    return index


def fuzzy_name_match(name_a: str, name_b: str, table: NameGroupTable) -> bool:
    """Same last token, and first tokens equal or nickname-equivalent."""
    tokens_a = normalize(name_a).split()
    tokens_b = normalize(name_b).split()
    if len(tokens_a) < 2 or len(tokens_b) < 2:
        return False
    if tokens_a[-1] != tokens_b[-1]:
        return False
    return are_variations(tokens_a[0], tokens_b[0], table)


def match_roster_name(user: LookupUser, index: RosterIndex,
                      table: NameGroupTable) -> Optional[str]:
    """Return the normalized roster name this lookup user resolves to, if any."""
    key = normalize(user.name)
    if not key:
        return None
    if key in index.names:
        return key
    for candidate in sorted(index.names):
        if fuzzy_name_match(key, candidate, table):
            return candidate
    return None


def is_in_scope(user: LookupUser, index: RosterIndex, table: NameGroupTable) -> bool:
    return match_roster_name(user, index, table) is not None


def filter_in_scope(users: Iterable[LookupUser], index: RosterIndex,
                    table: NameGroupTable) -> List[LookupUser]:
    users = list(users)
    in_scope = [u for u in users if is_in_scope(u, index, table)]
    logger.info("%d of %d lookup users resolve to the roster", len(in_scope), len(users))
    return in_scope


def link_platform_activity(
    users: Iterable[LookupUser],
    index: RosterIndex,
    table: NameGroupTable,
    seats: Iterable[SeatRecord] = (),
    activity: Iterable[ActivityRecord] = (),
) -> List[ReconciledUser]:
    """
    Resolve in-scope lookup users to their seat and Cursor activity rows.

    Out-of-scope users are dropped. A user without a login or email simply
    has no linked records on that platform.
    """
    seats_by_login = {seat.login: seat for seat in seats}
    activity_by_email: Dict[str, List[ActivityRecord]] = defaultdict(list)
    for record in activity:
        if record.email:
            activity_by_email[record.email.lower()].append(record)

    reconciled: List[ReconciledUser] = []
    for user in users:
        roster_name = match_roster_name(user, index, table)
        if roster_name is None:
            continue
        reconciled.append(ReconciledUser(
            user=user,
            roster_name=roster_name,
            seat=seats_by_login.get(user.github_login) if user.github_login else None,
            activity=activity_by_email.get(user.email.lower(), []) if user.email else [],
        ))
    return reconciled
