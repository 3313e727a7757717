"""
quill_engine/models/ -- Pydantic v2 models for the edit lifecycle engine.

Submodules:
    base     Shared camelCase wire configuration (CamelModel).
    edits    LineEdit union, FileTarget union, ChangeSet.
    canon    Canonical entries, relations, culture data, continuity issues.
    patches  EntryPatch, the operation union and legacy-name normalization.
"""

from quill_engine.models.base import CamelModel
from quill_engine.models.canon import (
    ContinuityIssue,
    CultureMembership,
    CultureVersion,
    Entry,
    Evidence,
    IssueStatus,
    Mention,
    Relationship,
    Revision,
    Severity,
    SourceRef,
)
from quill_engine.models.edits import (
    ActiveTarget,
    ChangeSet,
    ChangeStatus,
    CharacterTarget,
    DeleteEdit,
    FileTarget,
    InsertEdit,
    LineEdit,
    LocationTarget,
    ReplaceEdit,
    TargetKind,
    WorldTarget,
)
from quill_engine.models.patches import (
    EntryPatch,
    EntryPatchOperation,
    PatchStatus,
    normalize_operation,
)

__all__ = [
    "ActiveTarget",
    "CamelModel",
    "ChangeSet",
    "ChangeStatus",
    "CharacterTarget",
    "ContinuityIssue",
    "CultureMembership",
    "CultureVersion",
    "DeleteEdit",
    "Entry",
    "EntryPatch",
    "EntryPatchOperation",
    "Evidence",
    "FileTarget",
    "InsertEdit",
    "IssueStatus",
    "LineEdit",
    "LocationTarget",
    "Mention",
    "PatchStatus",
    "Relationship",
    "ReplaceEdit",
    "Revision",
    "Severity",
    "SourceRef",
    "TargetKind",
    "WorldTarget",
    "normalize_operation",
]
