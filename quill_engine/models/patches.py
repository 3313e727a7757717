"""
quill_engine/models/patches.py -- Entry patches and their operations.

An ``EntryPatch`` is a reviewable bundle of operations against the canonical
store.  Two generations of operation names exist in stored data and in
extraction output:

    legacy              current
    ------              -------
    create              create-entry        (docType/fields -> entryType/entry)
    update              update-entry        (docId -> entryId)
    add-relationship    add-relation        (relationship -> relation)
    remove-relationship remove-relation     (relationshipId -> relationId)

``normalize_operation`` maps both onto the current variant, so the
interpreter only ever sees one shape.  ``EntryPatch`` runs it on every raw
operation it is built from.

Usage::

    from quill_engine.models.patches import EntryPatch

    patch = EntryPatch.model_validate({
        "operations": [{"op": "create", "docType": "character",
                        "fields": {"name": "Elena"}}],
        "sourceRef": {"kind": "chat_message", "id": "msg_1"},
        "confidence": 0.7,
    })
    patch.operations[0].op   # -> "create-entry"
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError, field_validator

from quill_engine.config import AUTO_COMMIT_THRESHOLD, DEFAULT_PATCH_CONFIDENCE
from quill_engine.models.base import CamelModel
from quill_engine.models.canon import (
    ContinuityIssue,
    CultureVersion,
    Entry,
    Relationship,
    SourceRef,
    normalize_entry_type,
)
from quill_engine.utils import make_id, now_ms

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------

class CreateEntryOp(CamelModel):
    """Create an entry.  Either field may be missing in AI output."""

    op: Literal["create-entry"] = "create-entry"
    entry_type: Optional[str] = None
    entry: Optional[Entry] = None


class UpdateEntryOp(CamelModel):
    op: Literal["update-entry"] = "update-entry"
    entry_id: str
    field: str
    old_value: Any = None
    new_value: Any = None


class AddRelationOp(CamelModel):
    op: Literal["add-relation"] = "add-relation"
    relation: Relationship


class RemoveRelationOp(CamelModel):
    op: Literal["remove-relation"] = "remove-relation"
    relation_id: str


class CreateIssueOp(CamelModel):
    op: Literal["create-issue"] = "create-issue"
    issue: ContinuityIssue


class ResolveIssueOp(CamelModel):
    op: Literal["resolve-issue"] = "resolve-issue"
    issue_id: str
    resolution: Optional[str] = None


class CreateVersionOp(CamelModel):
    """Snapshot a culture / organization / religion for an era."""

    op: Literal["create-version"] = "create-version"
    version: CultureVersion


class UpdateSceneLinksOp(CamelModel):
    op: Literal["update-scene-links"] = "update-scene-links"
    scene_id: str
    entry_ids: list[str] = Field(default_factory=list)


class MarkRetconOp(CamelModel):
    op: Literal["mark-retcon"] = "mark-retcon"
    entry_id: str
    note: Optional[str] = None


class MarkContradictionOp(CamelModel):
    op: Literal["mark-contradiction"] = "mark-contradiction"
    doc_id: str
    note: str = ""


class DeleteOp(CamelModel):
    op: Literal["delete"] = "delete"
    doc_id: str


EntryPatchOperation = Annotated[
    Union[
        CreateEntryOp,
        UpdateEntryOp,
        AddRelationOp,
        RemoveRelationOp,
        CreateIssueOp,
        ResolveIssueOp,
        CreateVersionOp,
        UpdateSceneLinksOp,
        MarkRetconOp,
        MarkContradictionOp,
        DeleteOp,
    ],
    Field(discriminator="op"),
]

_OPERATION_TYPES = (
    CreateEntryOp,
    UpdateEntryOp,
    AddRelationOp,
    RemoveRelationOp,
    CreateIssueOp,
    ResolveIssueOp,
    CreateVersionOp,
    UpdateSceneLinksOp,
    MarkRetconOp,
    MarkContradictionOp,
    DeleteOp,
)

_operation_adapter = TypeAdapter(EntryPatchOperation)


# ------------------------------------------------------------------
# Legacy-name normalization
# ------------------------------------------------------------------

LEGACY_OP_NAMES = {
    "create": "create-entry",
    "update": "update-entry",
    "add-relationship": "add-relation",
    "remove-relationship": "remove-relation",
}

# canonical op -> {older field name: current field name}
_FIELD_SYNONYMS = {
    "update-entry": {"docId": "entryId"},
    "add-relation": {"relationship": "relation"},
    "remove-relation": {"relationshipId": "relationId"},
    "mark-retcon": {"docId": "entryId"},
    "mark-contradiction": {"entryId": "docId"},
    "delete": {"entryId": "docId"},
}


def _resolve_create_payload(raw: dict) -> tuple[str | None, Any]:
    """Pick whichever create payload shape is fully populated.

    Returns ``(None, None)`` when neither ``entryType``+``entry`` nor
    ``docType``+``fields`` is present.
    """
    entry_type = raw.get("entryType") or raw.get("entry_type")
    if entry_type and raw.get("entry") is not None:
        return entry_type, raw["entry"]
    doc_type = raw.get("docType") or raw.get("doc_type")
    if doc_type and raw.get("fields") is not None:
        return doc_type, raw["fields"]
    return None, None


def normalize_operation(raw: Any):
    """Map a raw (legacy or current) operation onto the current union.

    Parameters
    ----------
    raw : dict or operation model
        One element of a patch's ``operations`` list.

    Returns
    -------
    EntryPatchOperation or None
        ``None`` when the operation name is unknown or the payload does
        not validate; the caller drops it.
    """
    if isinstance(raw, _OPERATION_TYPES):
        return raw
    if not isinstance(raw, dict):
        logger.warning("Dropping patch operation of type %s", type(raw).__name__)
        return None

    op = raw.get("op") or "create-entry"
    op = LEGACY_OP_NAMES.get(op, op)

    if op == "create-entry":
        entry_type, entry = _resolve_create_payload(raw)
        data: dict[str, Any] = {"op": op, "entryType": entry_type, "entry": entry}
    else:
        data = {key: value for key, value in raw.items() if key != "op"}
        data["op"] = op
        for older, current in _FIELD_SYNONYMS.get(op, {}).items():
            if current not in data and older in data:
                data[current] = data.pop(older)

    try:
        return _operation_adapter.validate_python(data)
    except ValidationError as exc:
        logger.warning(
            "Dropping malformed '%s' operation: %d validation error(s)",
            op, exc.error_count(),
        )
        return None


# ------------------------------------------------------------------
# EntryPatch
# ------------------------------------------------------------------

class PatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class EntryPatch(CamelModel):
    """A reviewable set of canonical-store operations.

    ``auto_commit`` is the extraction stage's recommendation only; routing
    is decided by the caller (see ``quill_engine.build_feed``).
    """

    id: str = Field(default_factory=lambda: make_id("epatch"))
    status: PatchStatus = PatchStatus.PENDING
    operations: list[EntryPatchOperation] = Field(default_factory=list)
    source_ref: SourceRef = Field(default_factory=SourceRef)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    auto_commit: bool = False
    created_at: int = Field(default_factory=now_ms)
    resolved_at: Optional[int] = None

    @field_validator("operations", mode="before")
    @classmethod
    def _normalize_operations(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        normalized = (normalize_operation(item) for item in value)
        return [op for op in normalized if op is not None]


def create_entry_patch(
    source_ref: SourceRef,
    operations: list,
    confidence: float | None = None,
    auto_commit: bool | None = None,
    *,
    default_confidence: float = DEFAULT_PATCH_CONFIDENCE,
    auto_commit_threshold: float = AUTO_COMMIT_THRESHOLD,
) -> EntryPatch:
    """Build a pending patch with the extraction-stage defaults.

    Confidence defaults to ``default_confidence`` when there is at least one
    operation and to ``0`` otherwise; ``auto_commit`` defaults to
    ``confidence >= auto_commit_threshold``.
    """
    normalized = [op for op in map(normalize_operation, operations) if op is not None]
    if confidence is None:
        confidence = default_confidence if normalized else 0.0
    if auto_commit is None:
        auto_commit = confidence >= auto_commit_threshold
    return EntryPatch(
        operations=normalized,
        source_ref=source_ref,
        confidence=confidence,
        auto_commit=auto_commit,
    )


def build_entry_patch_from_raw(
    raw: dict,
    source_ref: SourceRef | None = None,
    *,
    default_confidence: float = DEFAULT_PATCH_CONFIDENCE,
    auto_commit_threshold: float = AUTO_COMMIT_THRESHOLD,
) -> EntryPatch | None:
    """Wrap one raw extraction record as a single-operation patch.

    The record carries the operation fields plus an optional numeric
    ``confidence`` (clamped into ``[0, 1]``).  Create payloads get their
    entry type normalized and a name / summary default.  Returns ``None``
    when the record cannot be turned into an operation.
    """
    operation = normalize_operation({k: v for k, v in raw.items() if k != "confidence"})
    if operation is None:
        return None

    if isinstance(operation, CreateEntryOp):
        if operation.entry is None:
            return None
        entry_type = normalize_entry_type(
            operation.entry_type or operation.entry.entry_type or operation.entry.type
        )
        operation = operation.model_copy(update={
            "entry_type": entry_type,
            "entry": operation.entry.model_copy(update={
                "entry_type": entry_type,
                "type": entry_type,
            }),
        })

    raw_confidence = raw.get("confidence")
    if isinstance(raw_confidence, (int, float)) and not isinstance(raw_confidence, bool):
        confidence = min(1.0, max(0.0, float(raw_confidence)))
    else:
        confidence = default_confidence

    return EntryPatch(
        operations=[operation],
        source_ref=source_ref or SourceRef(kind="chat_message", id=make_id("msg")),
        confidence=confidence,
        auto_commit=confidence >= auto_commit_threshold,
    )
