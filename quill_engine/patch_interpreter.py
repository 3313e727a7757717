"""
quill_engine/patch_interpreter.py -- Applies EntryPatch operations to a store.

``apply_entry_patch`` walks ``patch.operations`` in order and calls exactly
one store capability per operation, awaiting each before the next so later
operations can rely on earlier ones (an ``add-relation`` may point at an
entry created earlier in the same patch).  One timestamp is taken on entry
and used for every write.

Policy:
    - A create payload that cannot be resolved is skipped; the rest of the
      patch still applies.  Patches are AI-authored and may be partly
      malformed.
    - Store failures are not caught.  Because the status update is the last
      call, a failure leaves the patch ``pending`` and Accept can be retried
      (earlier operations may already have been written).
    - Rejection never touches entries; it only records the status.

Usage::

    from quill_engine.patch_interpreter import apply_entry_patch

    report = await apply_entry_patch(patch, store)
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from quill_engine.models.canon import (
    ContinuityIssue,
    CultureVersion,
    Entry,
    IssueStatus,
    Relationship,
)
from quill_engine.models.patches import (
    AddRelationOp,
    CreateEntryOp,
    CreateIssueOp,
    CreateVersionOp,
    DeleteOp,
    EntryPatch,
    MarkContradictionOp,
    MarkRetconOp,
    PatchStatus,
    RemoveRelationOp,
    ResolveIssueOp,
    UpdateEntryOp,
    UpdateSceneLinksOp,
)
from quill_engine.utils import make_slug, now_ms

logger = logging.getLogger(__name__)


class EntryPatchStore(Protocol):
    """Storage capabilities the interpreter needs.  All calls may raise."""

    async def add_entry(self, entry: Entry) -> None: ...

    async def update_entry(self, entry_id: str, changes: dict[str, Any]) -> None: ...

    async def delete_entry(self, entry_id: str) -> None: ...

    async def add_entry_relation(self, relation: Relationship) -> None: ...

    async def remove_entry_relation(self, relation_id: str) -> None: ...

    async def add_continuity_issue(self, issue: ContinuityIssue) -> None: ...

    async def update_continuity_issue_status(
        self, issue_id: str, status: IssueStatus, resolution: Optional[str] = None,
    ) -> None: ...

    async def add_culture_version(self, version: CultureVersion) -> None: ...

    async def update_patch_status(self, patch_id: str, status: PatchStatus) -> None: ...

    async def get_entry_by_id(self, entry_id: str) -> Optional[Entry]: ...


def entry_attribute(field_name: str) -> str:
    """Map a wire field name (``bodyMd``) to the Entry attribute (``body_md``)."""
    if field_name in Entry.model_fields:
        return field_name
    for name, info in Entry.model_fields.items():
        if info.alias == field_name:
            return name
    return field_name


def _fill_defaults(model, **defaults):
    """Copy *model*, setting each default only where the payload left it unset."""
    missing = {k: v for k, v in defaults.items() if k not in model.model_fields_set}
    return model.model_copy(update=missing)


def build_entry(op: CreateEntryOp, now: int, ordinal: int = 0) -> Optional[Entry]:
    """Complete a create payload into a full Entry, or ``None`` if unresolvable.

    A payload without a slug gets one derived from its name.
    """
    if not op.entry_type or op.entry is None:
        return None
    entry = _fill_defaults(
        op.entry,
        id=f"ent_{now}_{ordinal}",
        slug=make_slug(op.entry.name),
        type=op.entry_type,
        created_at=now,
    )
    return entry.model_copy(update={"entry_type": op.entry_type, "updated_at": now})


async def apply_entry_patch(
    patch: EntryPatch,
    store: EntryPatchStore,
    now: Optional[int] = None,
) -> dict:
    """Apply every operation of *patch* and mark it accepted.

    Parameters
    ----------
    patch : EntryPatch
        The patch to apply.  Its operations are already normalized.
    store : EntryPatchStore
        Injected storage capability.
    now : int, optional
        Epoch-ms timestamp for every write (default: current time).

    Returns
    -------
    dict
        ``{"applied": int, "skipped": int}``.
    """
    now = now_ms() if now is None else now
    applied = 0
    skipped = 0

    for ordinal, op in enumerate(patch.operations):
        if isinstance(op, CreateEntryOp):
            entry = build_entry(op, now, ordinal)
            if entry is None:
                logger.warning("Skipping unresolvable create-entry in patch %s", patch.id)
                skipped += 1
                continue
            await store.add_entry(entry)

        elif isinstance(op, UpdateEntryOp):
            await store.update_entry(
                op.entry_id,
                {entry_attribute(op.field): op.new_value, "updated_at": now},
            )

        elif isinstance(op, AddRelationOp):
            relation = _fill_defaults(op.relation, id=f"rel_{now}_{ordinal}", created_at=now)
            await store.add_entry_relation(relation)

        elif isinstance(op, RemoveRelationOp):
            await store.remove_entry_relation(op.relation_id)

        elif isinstance(op, CreateIssueOp):
            issue = _fill_defaults(op.issue, id=f"issue_{now}_{ordinal}", created_at=now)
            await store.add_continuity_issue(issue.model_copy(update={"updated_at": now}))

        elif isinstance(op, ResolveIssueOp):
            await store.update_continuity_issue_status(
                op.issue_id, IssueStatus.RESOLVED, op.resolution,
            )

        elif isinstance(op, CreateVersionOp):
            version = _fill_defaults(op.version, id=f"cv_{now}_{ordinal}", created_at=now)
            await store.add_culture_version(version.model_copy(update={"updated_at": now}))

        elif isinstance(op, MarkRetconOp):
            await store.update_entry(op.entry_id, {
                "canon_status": "retconned",
                "status": "draft",
                "updated_at": now,
                "details": {"note": op.note or "retconned"},
            })

        elif isinstance(op, MarkContradictionOp):
            existing = await store.get_entry_by_id(op.doc_id)
            if existing is None:
                logger.warning("Cannot mark contradiction on missing entry %s", op.doc_id)
                skipped += 1
                continue
            # Append-only: earlier notes are never replaced or deduplicated.
            contradictions = list(existing.details.get("contradictions") or [])
            contradictions.append({"note": op.note, "at": now})
            await store.update_entry(op.doc_id, {
                "details": {**existing.details, "contradictions": contradictions},
                "updated_at": now,
            })

        elif isinstance(op, UpdateSceneLinksOp):
            await store.update_entry(op.scene_id, {
                "details": {"linkedEntryIds": list(op.entry_ids)},
                "updated_at": now,
            })

        elif isinstance(op, DeleteOp):
            await store.delete_entry(op.doc_id)

        else:
            logger.warning("Skipping unsupported operation %r", getattr(op, "op", op))
            skipped += 1
            continue

        applied += 1

    await store.update_patch_status(patch.id, PatchStatus.ACCEPTED)
    logger.info(
        "Applied patch %s: %d operation(s), %d skipped", patch.id, applied, skipped,
    )
    return {"applied": applied, "skipped": skipped}


async def reject_entry_patch(patch: EntryPatch, store: EntryPatchStore) -> None:
    """Record the rejection; no operation is applied or rolled back."""
    await store.update_patch_status(patch.id, PatchStatus.REJECTED)
    logger.info("Rejected patch %s", patch.id)
