"""
quill_engine/models/edits.py -- Line edits, file targets and change sets.

All line indices are **0-based** with an exclusive upper bound.  The model
emits 1-based line numbers; the edit parser converts them before any of
these records is built.

Usage::

    from quill_engine.models.edits import ChangeSet, ReplaceEdit, CharacterTarget

    cs = ChangeSet(
        file_target=CharacterTarget(name="Elena"),
        edits=[ReplaceEdit(start=2, end=5, new_lines=["A new paragraph."])],
    )
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import ConfigDict, Field

from quill_engine.models.base import CamelModel
from quill_engine.utils import make_id


# ------------------------------------------------------------------
# Line-level edit operations
# ------------------------------------------------------------------

class ReplaceEdit(CamelModel):
    """Replace lines ``[start, end)`` with ``new_lines``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["replace"] = "replace"
    start: int
    end: int
    new_lines: list[str] = Field(default_factory=list)


class InsertEdit(CamelModel):
    """Insert ``new_lines`` after ``after_index`` (``-1`` prepends)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["insert"] = "insert"
    after_index: int
    new_lines: list[str] = Field(default_factory=list)


class DeleteEdit(CamelModel):
    """Remove lines ``[start, end)``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["delete"] = "delete"
    start: int
    end: int


LineEdit = Annotated[
    Union[ReplaceEdit, InsertEdit, DeleteEdit],
    Field(discriminator="type"),
]


# ------------------------------------------------------------------
# File targets
# ------------------------------------------------------------------

class TargetKind(str, Enum):
    ACTIVE = "active"
    CHARACTER = "character"
    LOCATION = "location"
    WORLD = "world"


class ActiveTarget(CamelModel):
    """The document currently open in the editor."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["active"] = "active"


class CharacterTarget(CamelModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["character"] = "character"
    name: str


class LocationTarget(CamelModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["location"] = "location"
    name: str


class WorldTarget(CamelModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["world"] = "world"
    key: str


FileTarget = Annotated[
    Union[ActiveTarget, CharacterTarget, LocationTarget, WorldTarget],
    Field(discriminator="kind"),
]


# ------------------------------------------------------------------
# Change lifecycle
# ------------------------------------------------------------------

class ChangeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ChangeSet(CamelModel):
    """A group of line edits produced by one edit block, aimed at one target.

    Change sets are immutable; a status transition produces a copy via
    ``model_copy(update={"status": ...})``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: make_id("cs"))
    file_target: FileTarget = Field(default_factory=ActiveTarget)
    edits: list[LineEdit] = Field(default_factory=list)
    status: ChangeStatus = ChangeStatus.PENDING
    commentary: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status == ChangeStatus.PENDING
