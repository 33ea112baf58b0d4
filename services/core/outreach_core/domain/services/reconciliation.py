"""Field-level reconciliation of task outcomes into stored records.

Each task kind owns a fixed set of record fields and merges only those,
never overwriting a whole record. Merges are idempotent: applying the
same outcome twice yields the same record as applying it once, and an
unchanged merge reports ``changed=False`` so no write is issued.

Two fields carry monotonic rules:

- ``messageSent`` never moves from True back to False.
- ``lastChecked`` never decreases.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from outreach_core.domain.models import TaskKind

AUTHORITATIVE_FIELDS: dict[str, frozenset[str]] = {
    TaskKind.STATUS_CHECK: frozenset({"messageSent"}),
    TaskKind.PROFILE_EXTRACT: frozenset({"name", "headline", "location", "error"}),
    TaskKind.INBOX_POLL: frozenset({"lastMessages", "lastChecked", "process"}),
    TaskKind.REPLY: frozenset({"repliesSent"}),
    TaskKind.CONNECT_REQUEST: frozenset({"profileUrl", "status", "note", "jobId", "sentAt"}),
}

# Map-valued fields merge key by key
MAP_FIELDS = frozenset({"repliesSent"})


class FieldOwnershipError(ValueError):
    """Raised when a task tries to write a field it does not own."""

    pass


def fields_for(kind: str) -> frozenset[str]:
    return AUTHORITATIVE_FIELDS[kind]


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce a stored timestamp to an aware UTC datetime.

    Accepts datetimes (Firestore returns these) and ISO 8601 strings (the
    SQL store stores these). Anything else yields None.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _advances(current: Any, new: Any) -> bool:
    """Whether ``new`` may replace ``current`` for a monotonic timestamp."""
    current_dt = to_datetime(current)
    new_dt = to_datetime(new)
    if current_dt is None:
        return True
    if new_dt is None:
        # Server timestamp sentinel: resolved at write time, always later
        return new is not None
    return new_dt >= current_dt


def merge_fields(
    record: Optional[dict[str, Any]],
    fields: dict[str, Any],
    allowed: Iterable[str],
) -> tuple[dict[str, Any], bool]:
    """Merge ``fields`` into a copy of ``record``.

    Returns:
        Tuple of (merged record, changed).

    Raises:
        FieldOwnershipError: If a field is outside ``allowed``.
    """
    allowed = frozenset(allowed)
    foreign = set(fields) - allowed
    if foreign:
        raise FieldOwnershipError(f"Fields not owned by this task: {sorted(foreign)}")

    merged = dict(record or {})
    changed = False

    for key, value in fields.items():
        current = merged.get(key)

        if key == "messageSent" and current is True and not value:
            continue
        if key == "lastChecked" and not _advances(current, value):
            continue
        if key in MAP_FIELDS and isinstance(value, dict):
            value = {**(current or {}), **value}

        if key not in merged or current != value:
            merged[key] = value
            changed = True

    return merged, changed


def merge_profile_outcomes(
    profiles: list[dict[str, Any]],
    outcomes: dict[str, dict[str, Any]],
    kind: str,
) -> tuple[list[dict[str, Any]], list[str]]:
    """Merge per-profile outcomes, keyed by profile link, into a profile list.

    The whole list is built in memory so the caller can write it once.

    Returns:
        Tuple of (merged profile list, links whose record changed).
    """
    allowed = fields_for(kind)
    merged_profiles = []
    changed_links = []

    for profile in profiles:
        link = profile.get("link")
        outcome = outcomes.get(link)
        if outcome is None:
            merged_profiles.append(profile)
            continue

        merged, changed = merge_fields(profile, outcome, allowed)
        merged_profiles.append(merged)
        if changed:
            changed_links.append(link)

    return merged_profiles, changed_links
