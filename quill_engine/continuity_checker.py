"""
quill_engine/continuity_checker.py -- Deterministic continuity rules.

Each check is a pure function of a ``ContinuityCheckContext`` and returns a
list of fresh ``ContinuityIssue`` records.  Checks never read storage and
never depend on input order beyond the order of their own output, so the
sync step can diff their results against previously recorded issues by
fingerprint.

Checks:
    1. duplicate-canonical-name     canon entries sharing (entry type, slug)
    2. broken-mention-reference     mentions pointing at unknown entries
    3. timeline-event-conflict      same event name + day, diverging text
    4. culture-membership-overlap   overlapping primary cultures per character
    5. death-before-appearance      a character present in a scene on or
                                    after their recorded death (blocker)

Timeline days come from ``details.relativeDay`` (or ``relative_day``) on
``timeline_event`` entries; anything whose day cannot be resolved is
skipped rather than guessed.

Usage::

    from quill_engine.continuity_checker import (
        ContinuityCheckContext, run_deterministic_continuity_checks,
    )

    issues = run_deterministic_continuity_checks(
        ContinuityCheckContext(universe_id="u1", entries=entries, mentions=mentions)
    )
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from typing import Any, Optional

from quill_engine.models.canon import (
    ContinuityIssue,
    CultureMembership,
    Entry,
    Evidence,
    Mention,
    Severity,
)
from quill_engine.utils import make_id, now_ms


class CheckType(str, Enum):
    DUPLICATE_CANONICAL_NAME = "duplicate-canonical-name"
    BROKEN_MENTION_REFERENCE = "broken-mention-reference"
    TIMELINE_EVENT_CONFLICT = "timeline-event-conflict"
    CULTURE_MEMBERSHIP_OVERLAP = "culture-membership-overlap"
    DEATH_BEFORE_APPEARANCE = "death-before-appearance"


@dataclass
class ContinuityCheckContext:
    """Everything the rules look at for one universe."""
    universe_id: str
    entries: list[Entry] = field(default_factory=list)
    mentions: list[Mention] = field(default_factory=list)
    culture_memberships: list[CultureMembership] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _create_issue(
    ctx: ContinuityCheckContext,
    check_type: CheckType,
    description: str,
    evidence: list[Evidence],
    severity: Severity = Severity.WARNING,
) -> ContinuityIssue:
    now = now_ms()
    return ContinuityIssue(
        id=make_id("issue"),
        universe_id=ctx.universe_id,
        severity=severity,
        check_type=check_type.value,
        description=description,
        evidence=evidence,
        created_at=now,
        updated_at=now,
    )


def _as_day(value: Any) -> Optional[float]:
    """Coerce a stored day value to a finite number, or ``None``."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return value


def _entry_day(entry: Entry) -> Optional[float]:
    details = entry.details
    raw = details.get("relativeDay")
    if raw is None:
        raw = details.get("relative_day")
    return _as_day(raw)


def _day_label(day: float) -> str:
    return str(int(day)) if float(day).is_integer() else repr(float(day))


def timeline_event_day_index(entries: list[Entry]) -> dict[str, float]:
    """Map timeline-event entry id -> resolvable day."""
    index: dict[str, float] = {}
    for entry in entries:
        if entry.entry_type != "timeline_event":
            continue
        day = _entry_day(entry)
        if day is not None:
            index[entry.id] = day
    return index


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def detect_duplicate_canonical_names(ctx: ContinuityCheckContext) -> list[ContinuityIssue]:
    """Two canon entries of the same type must not share a slug."""
    groups: dict[tuple[str, str], list[Entry]] = {}
    for entry in ctx.entries:
        if entry.canon_status != "canon":
            continue
        groups.setdefault((entry.entry_type, entry.slug), []).append(entry)

    issues = []
    for group in groups.values():
        if len(group) < 2:
            continue
        issues.append(_create_issue(
            ctx,
            CheckType.DUPLICATE_CANONICAL_NAME,
            f"Duplicate canonical slug detected: {group[0].slug}",
            [Evidence(type="entry", id=entry.id, excerpt=entry.name) for entry in group],
        ))
    return issues


def detect_broken_mention_references(ctx: ContinuityCheckContext) -> list[ContinuityIssue]:
    """Every mention must resolve to a known entry id."""
    entry_ids = {entry.id for entry in ctx.entries}
    return [
        _create_issue(
            ctx,
            CheckType.BROKEN_MENTION_REFERENCE,
            f"Mention {mention.id} references missing entry {mention.entry_id}",
            [
                Evidence(type="mention", id=mention.id),
                Evidence(type="entry", id=mention.entry_id),
            ],
        )
        for mention in ctx.mentions
        if mention.entry_id not in entry_ids
    ]


def detect_conflicting_timeline_events(ctx: ContinuityCheckContext) -> list[ContinuityIssue]:
    """Timeline events sharing a name and day must tell the same story."""
    buckets: dict[str, list[Entry]] = {}
    for entry in ctx.entries:
        if entry.entry_type != "timeline_event":
            continue
        day = _entry_day(entry)
        if day is not None:
            day_key = f"day:{_day_label(day)}"
        else:
            day_key = f"date:{entry.details.get('date') or ''}"
        buckets.setdefault(f"{entry.name.lower()}::{day_key}", []).append(entry)

    issues = []
    for group in buckets.values():
        if len(group) < 2:
            continue
        signatures = {
            (entry.summary.strip(), (entry.body_md or "").strip()) for entry in group
        }
        if len(signatures) < 2:
            continue
        issues.append(_create_issue(
            ctx,
            CheckType.TIMELINE_EVENT_CONFLICT,
            f'Timeline event "{group[0].name}" has conflicting descriptions for the same date',
            [
                Evidence(type="event", id=entry.id, excerpt=entry.summary or entry.name)
                for entry in group
            ],
        ))
    return issues


def _membership_range(
    membership: CultureMembership, event_days: dict[str, float],
) -> Optional[tuple[float, float]]:
    """Resolve a membership's ``[start, end]`` day range, or ``None``."""
    if not membership.valid_from_event_id:
        return None
    start = event_days.get(membership.valid_from_event_id)
    if start is None:
        return None
    if membership.valid_to_event_id:
        end = event_days.get(membership.valid_to_event_id)
        if end is None:
            return None
    else:
        end = math.inf
    return start, end


def detect_culture_membership_overlap(ctx: ContinuityCheckContext) -> list[ContinuityIssue]:
    """Overlapping primary cultures need an explicit dual-heritage flag."""
    memberships = ctx.culture_memberships
    if len(memberships) < 2:
        return []

    event_days = timeline_event_day_index(ctx.entries)
    entries_by_id = {entry.id: entry for entry in ctx.entries}

    def name_of(entry_id: str) -> str:
        entry = entries_by_id.get(entry_id)
        return entry.name if entry else entry_id

    by_character: dict[str, list[CultureMembership]] = {}
    for membership in memberships:
        if membership.membership_kind != "primary":
            continue
        by_character.setdefault(membership.character_entry_id, []).append(membership)

    issues = []
    for character_id, rows in by_character.items():
        for a, b in combinations(rows, 2):
            if a.dual_heritage or b.dual_heritage:
                continue
            range_a = _membership_range(a, event_days)
            range_b = _membership_range(b, event_days)
            if range_a is None or range_b is None:
                continue
            if max(range_a[0], range_b[0]) > min(range_a[1], range_b[1]):
                continue

            character_name = name_of(character_id)
            culture_a = name_of(a.culture_entry_id)
            culture_b = name_of(b.culture_entry_id)
            issues.append(_create_issue(
                ctx,
                CheckType.CULTURE_MEMBERSHIP_OVERLAP,
                f"{character_name} has overlapping primary cultures "
                f"({culture_a} and {culture_b}) without dual_heritage flag",
                [
                    Evidence(type="entry", id=character_id, excerpt=character_name),
                    Evidence(type="culture_membership", id=a.id, excerpt=culture_a),
                    Evidence(type="culture_membership", id=b.id, excerpt=culture_b),
                ],
            ))
    return issues


def detect_death_before_appearance(ctx: ContinuityCheckContext) -> list[ContinuityIssue]:
    """A character must not be present in a scene dated on or after their death.

    Conservative: scenes or deaths whose day cannot be resolved are skipped.
    """
    entries_by_id = {entry.id: entry for entry in ctx.entries}
    event_days = timeline_event_day_index(ctx.entries)

    issues = []
    for scene in ctx.entries:
        if scene.entry_type != "scene":
            continue
        scene_event_id = str(
            scene.details.get("eventId") or scene.details.get("timelineEventId") or ""
        )
        scene_day = event_days.get(scene_event_id)
        if scene_day is None:
            continue

        participants = scene.details.get("presentCharacters")
        if not isinstance(participants, list):
            continue

        for participant_id in participants:
            if not isinstance(participant_id, str):
                continue
            character = entries_by_id.get(participant_id)
            if character is None:
                continue
            death_id = str(character.details.get("deathEventId") or "")
            death_day = event_days.get(death_id)
            if death_day is None or death_day > scene_day:
                continue
            issues.append(_create_issue(
                ctx,
                CheckType.DEATH_BEFORE_APPEARANCE,
                f"{character.name} appears after recorded death event",
                [
                    Evidence(type="scene", id=scene.id, excerpt=scene.name),
                    Evidence(type="entry", id=character.id, excerpt=character.name),
                    Evidence(type="event", id=death_id, excerpt="death event"),
                ],
                severity=Severity.BLOCKER,
            ))
    return issues


CHECKS = (
    detect_duplicate_canonical_names,
    detect_broken_mention_references,
    detect_conflicting_timeline_events,
    detect_culture_membership_overlap,
    detect_death_before_appearance,
)


def run_deterministic_continuity_checks(ctx: ContinuityCheckContext) -> list[ContinuityIssue]:
    """Concatenate the output of every check, in ``CHECKS`` order."""
    issues: list[ContinuityIssue] = []
    for check in CHECKS:
        issues.extend(check(ctx))
    return issues
