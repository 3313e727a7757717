"""
quill_engine/models/canon.py -- Canonical knowledge-base records.

Entries are the first-class narrative entities (characters, locations,
cultures, scenes, timeline events, ...).  Every field carries a default so
that partially specified payloads coming out of AI extraction can be parsed
first and completed later; ``model_fields_set`` tells the patch interpreter
which fields the payload actually supplied.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import Field

from quill_engine.models.base import CamelModel

ENTRY_TYPES = (
    "character",
    "location",
    "culture",
    "organization",
    "system",
    "item",
    "language",
    "religion",
    "lineage",
    "economy",
    "rule",
    # Legacy values still present in older universes.
    "faction",
    "magic_system",
    "lore_entry",
    "scene",
    "timeline_event",
)


def normalize_entry_type(value: str | None) -> str:
    """Map a loosely-typed entry type onto a known one.

    ``faction`` and ``magic_system`` fold into their current names; anything
    unrecognised becomes ``culture``.
    """
    lowered = (value or "").strip().lower()
    if lowered == "faction":
        return "organization"
    if lowered == "magic_system":
        return "system"
    if lowered in ENTRY_TYPES:
        return lowered
    return "culture"


class SourceRef(CamelModel):
    """Provenance of a patch or an entry fact."""

    kind: Literal["chat_message", "research_artifact", "scene_node", "manual"] = "manual"
    id: str = ""
    excerpt: Optional[str] = None


class RelationshipRef(CamelModel):
    """Denormalised outgoing edge stored on an entry."""

    relationship_id: str
    to_id: str
    type: str


class Entry(CamelModel):
    id: str = ""
    universe_id: str = ""
    entry_type: str = "lore_entry"
    name: str = ""
    slug: str = ""
    summary: str = ""
    body_md: str = ""
    canon_status: str = "draft"
    visibility: str = "private"
    tags: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)
    cover_media_id: Optional[str] = None
    type: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    status: str = "draft"
    sources: list[SourceRef] = Field(default_factory=list)
    relationships: list[RelationshipRef] = Field(default_factory=list)
    last_verified: int = 0
    created_at: int = 0
    updated_at: int = 0


class Relationship(CamelModel):
    """Typed edge between two entries (``from`` --type--> ``to``)."""

    id: str = ""
    from_id: str = Field(default="", alias="from")
    type: str = "related_to"
    to_id: str = Field(default="", alias="to")
    metadata: dict[str, Any] = Field(default_factory=dict)
    sources: list[SourceRef] = Field(default_factory=list)
    created_at: int = 0


class CultureVersion(CamelModel):
    """Era snapshot of a culture / organization / religion."""

    id: str = ""
    culture_entry_id: str = ""
    era_id: Optional[str] = None
    valid_from_event_id: str = ""
    valid_to_event_id: Optional[str] = None
    traits: dict[str, Any] = Field(default_factory=dict)
    change_trigger: Optional[str] = None
    source_scene_id: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0


class CultureMembership(CamelModel):
    id: str
    character_entry_id: str
    culture_entry_id: str
    membership_kind: str = "primary"
    dual_heritage: bool = False
    valid_from_event_id: Optional[str] = None
    valid_to_event_id: Optional[str] = None


class Mention(CamelModel):
    """A reference from a scene's prose to an entry."""

    id: str
    scene_id: str = ""
    entry_id: str


# ------------------------------------------------------------------
# Continuity ledger
# ------------------------------------------------------------------

class Severity(str, Enum):
    WARNING = "warning"
    BLOCKER = "blocker"


class IssueStatus(str, Enum):
    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    WONT_FIX = "wont_fix"

    @property
    def is_active(self) -> bool:
        return self in (IssueStatus.OPEN, IssueStatus.IN_REVIEW)


class Evidence(CamelModel):
    type: str
    id: str
    excerpt: Optional[str] = None


class ContinuityIssue(CamelModel):
    id: str = ""
    universe_id: str = ""
    severity: Severity = Severity.WARNING
    status: IssueStatus = IssueStatus.OPEN
    check_type: str = "manual"
    description: str = ""
    evidence: list[Evidence] = Field(default_factory=list)
    resolution: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0


class Revision(CamelModel):
    """Audit record written whenever the engine changes a tracked record."""

    id: str
    universe_id: str
    target_type: str
    target_id: str
    author_id: Optional[str] = None
    created_at: int
    recorded_at: int
    patch: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
