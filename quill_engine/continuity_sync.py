"""
quill_engine/continuity_sync.py -- Reconciles detected issues with the ledger.

Issues are matched by fingerprint, not by id:

    checkType :: description :: sorted("type:id", ...)

so re-running the deterministic checks never duplicates a record.  For each
detected issue the stored ledger is either extended (``detect``), a resolved
match is reopened (``reopen``), or an active match is left alone.  Active
issues whose fingerprint is no longer detected are auto-resolved
(``auto-resolve``).  Every write is followed by a revision record, in the
same spirit as an append-only event log: nothing is silently changed.

Running ``sync_continuity_issues`` twice with no data change in between
yields zero creates, reopens and auto-resolves on the second run.

Usage::

    from quill_engine.continuity_sync import sync_continuity_issues

    report = await sync_continuity_issues(store, "universe_1")
    report.open_count
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from pydantic import BaseModel

from quill_engine.continuity_checker import (
    ContinuityCheckContext,
    run_deterministic_continuity_checks,
)
from quill_engine.models.canon import (
    ContinuityIssue,
    CultureMembership,
    Entry,
    IssueStatus,
    Mention,
    Revision,
)
from quill_engine.utils import make_id, now_ms

logger = logging.getLogger(__name__)

ISSUE_TARGET_TYPE = "continuity_issue"


class ContinuityStore(Protocol):
    """Storage capabilities the sync routine needs.  All calls may raise."""

    async def list_entries_by_universe(self, universe_id: str) -> list[Entry]: ...

    async def list_mentions_by_scene(self, scene_id: str) -> list[Mention]: ...

    async def list_culture_memberships_by_character(
        self, character_entry_id: str,
    ) -> list[CultureMembership]: ...

    async def list_continuity_issues_by_universe(
        self, universe_id: str,
    ) -> list[ContinuityIssue]: ...

    async def add_continuity_issue(self, issue: ContinuityIssue) -> None: ...

    async def update_continuity_issue_status(
        self, issue_id: str, status: IssueStatus, resolution: Optional[str] = None,
    ) -> None: ...

    async def add_revision(self, revision: Revision) -> None: ...


class ContinuitySyncReport(BaseModel):
    """Summary of one reconciliation pass."""

    detected: int = 0
    created: int = 0
    reopened: int = 0
    auto_resolved: int = 0
    open_count: int = 0
    updated_at: int = 0


def issue_fingerprint(issue: ContinuityIssue) -> str:
    """Content identity of *issue*; independent of evidence order and id."""
    evidence = "|".join(sorted(f"{item.type}:{item.id}" for item in issue.evidence))
    return f"{issue.check_type}::{issue.description}::{evidence}"


def make_issue_revision(
    issue: ContinuityIssue,
    op: str,
    now: int,
    message: str,
    extra: Optional[dict[str, Any]] = None,
) -> Revision:
    patch = {"op": op, **(extra or {})}
    return Revision(
        id=make_id("rev"),
        universe_id=issue.universe_id,
        target_type=ISSUE_TARGET_TYPE,
        target_id=issue.id,
        created_at=now,
        recorded_at=now,
        patch=patch,
        message=message,
    )


def _dedupe_by_id(rows: list) -> list:
    seen: dict[str, Any] = {}
    for row in rows:
        seen.setdefault(row.id, row)
    return list(seen.values())


async def load_runtime_context(
    store: ContinuityStore, universe_id: str,
) -> ContinuityCheckContext:
    """Gather entries plus scene mentions and character memberships."""
    entries = await store.list_entries_by_universe(universe_id)

    mentions: list[Mention] = []
    memberships: list[CultureMembership] = []
    for entry in entries:
        if entry.entry_type == "scene":
            mentions.extend(await store.list_mentions_by_scene(entry.id))
        elif entry.entry_type == "character":
            memberships.extend(
                await store.list_culture_memberships_by_character(entry.id)
            )

    return ContinuityCheckContext(
        universe_id=universe_id,
        entries=list(entries),
        mentions=_dedupe_by_id(mentions),
        culture_memberships=_dedupe_by_id(memberships),
    )


async def detect_continuity_issues(
    store: ContinuityStore, universe_id: str,
) -> list[ContinuityIssue]:
    """Run every deterministic check against the stored universe."""
    ctx = await load_runtime_context(store, universe_id)
    return run_deterministic_continuity_checks(ctx)


def _is_active(issue: ContinuityIssue) -> bool:
    return IssueStatus(issue.status).is_active


async def sync_continuity_issues(
    store: ContinuityStore, universe_id: str,
) -> ContinuitySyncReport:
    """Bring the stored issue ledger in line with the current corpus.

    Parameters
    ----------
    store : ContinuityStore
        Injected storage capability.
    universe_id : str
        Universe to scan.

    Returns
    -------
    ContinuitySyncReport
    """
    detected = await detect_continuity_issues(store, universe_id)
    existing = await store.list_continuity_issues_by_universe(universe_id)

    # Newest record wins when the ledger already holds duplicates.
    by_fingerprint: dict[str, ContinuityIssue] = {}
    for issue in sorted(existing, key=lambda item: item.updated_at, reverse=True):
        by_fingerprint.setdefault(issue_fingerprint(issue), issue)

    now = now_ms()
    detected_fingerprints: set[str] = set()
    touched: set[str] = set()
    created = 0
    reopened = 0

    for issue in detected:
        fingerprint = issue_fingerprint(issue)
        detected_fingerprints.add(fingerprint)
        match = by_fingerprint.get(fingerprint)

        if match is None:
            await store.add_continuity_issue(issue)
            await store.add_revision(make_issue_revision(
                issue, "detect", now,
                f"Continuity issue detected: {issue.check_type}",
                {"checkType": issue.check_type, "severity": issue.severity.value},
            ))
            # Identical findings in one run collapse onto the first record.
            by_fingerprint[fingerprint] = issue
            touched.add(issue.id)
            created += 1
            continue

        touched.add(match.id)
        if not _is_active(match):
            previous = IssueStatus(match.status)
            await store.update_continuity_issue_status(match.id, IssueStatus.OPEN)
            await store.add_revision(make_issue_revision(
                match, "reopen", now,
                f"Continuity issue reopened: {match.check_type}",
                {"fromStatus": previous.value},
            ))
            by_fingerprint[fingerprint] = match.model_copy(
                update={"status": IssueStatus.OPEN, "updated_at": now},
            )
            reopened += 1

    auto_resolved = 0
    stamp = datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat()
    for issue in existing:
        if not _is_active(issue) or issue.id in touched:
            continue
        if issue_fingerprint(issue) in detected_fingerprints:
            continue
        await store.update_continuity_issue_status(
            issue.id,
            IssueStatus.RESOLVED,
            f"Auto-resolved by deterministic scan at {stamp}",
        )
        await store.add_revision(make_issue_revision(
            issue, "auto-resolve", now,
            f"Continuity issue auto-resolved: {issue.check_type}",
            {"checkType": issue.check_type},
        ))
        auto_resolved += 1

    current = await store.list_continuity_issues_by_universe(universe_id)
    open_count = sum(1 for issue in current if _is_active(issue))

    report = ContinuitySyncReport(
        detected=len(detected),
        created=created,
        reopened=reopened,
        auto_resolved=auto_resolved,
        open_count=open_count,
        updated_at=now,
    )
    logger.info(
        "Continuity sync for %s: %d detected, %d created, %d reopened, "
        "%d auto-resolved, %d open",
        universe_id, report.detected, report.created, report.reopened,
        report.auto_resolved, report.open_count,
    )
    return report
