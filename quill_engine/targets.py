"""
quill_engine/targets.py -- File-target keys and entity resolution.

Every edit names its addressee with a ``FileTarget``.  The canonical string
key built here (``"__active__"`` or ``"<kind>:<lowercased name>"``) is the
only identity used to group pending change sets, so ``Elena`` and ``ELENA``
land in the same bucket.

Targets other than the active document are resolved by case-insensitive
exact name match against the entity tables handed to ``TargetResolver``;
there is no fuzzy matching.

Usage::

    from quill_engine.targets import TargetResolver, EditableEntity

    resolver = TargetResolver(
        active_text="Chapter one...",
        entities=[EditableEntity(id="c1", kind="character", name="Elena", text="Notes")],
    )
    resolver.base_text("character:elena")   # -> "Notes"
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from quill_engine.errors import UnknownTargetError
from quill_engine.models.base import CamelModel
from quill_engine.models.edits import (
    ActiveTarget,
    CharacterTarget,
    LocationTarget,
    TargetKind,
    WorldTarget,
)

logger = logging.getLogger(__name__)

ACTIVE_KEY = "__active__"


def _fold(name: str) -> str:
    return name.strip().lower()


def file_target_key(target) -> str:
    """Return the canonical grouping key for *target*."""
    kind = TargetKind(target.kind)
    if kind is TargetKind.ACTIVE:
        return ACTIVE_KEY
    if kind is TargetKind.CHARACTER:
        return f"character:{_fold(target.name)}"
    if kind is TargetKind.LOCATION:
        return f"location:{_fold(target.name)}"
    if kind is TargetKind.WORLD:
        return f"world:{_fold(target.key)}"
    raise UnknownTargetError(f"No key mapping for target kind '{kind.value}'.")


def parse_target_key(key: str) -> tuple[TargetKind, str]:
    """Split a key from ``file_target_key`` back into ``(kind, folded name)``."""
    if key == ACTIVE_KEY:
        return TargetKind.ACTIVE, ""
    kind, sep, name = key.partition(":")
    if not sep:
        raise UnknownTargetError(f"'{key}' is not a file-target key.")
    try:
        return TargetKind(kind), name
    except ValueError:
        raise UnknownTargetError(f"'{key}' names an unknown target kind.") from None


def make_file_target(kind: str, name: str = ""):
    """Build a ``FileTarget`` from a ``file=<kind>:<name>`` qualifier.

    Returns ``None`` for an unrecognised kind.
    """
    if kind == TargetKind.CHARACTER.value:
        return CharacterTarget(name=name)
    if kind == TargetKind.LOCATION.value:
        return LocationTarget(name=name)
    if kind == TargetKind.WORLD.value:
        return WorldTarget(key=name)
    if kind == TargetKind.ACTIVE.value:
        return ActiveTarget()
    return None


class EditableEntity(CamelModel):
    """In-session snapshot of an entity the AI may edit.

    ``text`` is the field edit blocks operate on: notes for characters and
    world entries, the description for locations.
    """

    id: str
    kind: TargetKind
    name: str
    text: str = ""


class TargetResolver:
    """Resolves target keys to their committed text.

    Parameters
    ----------
    active_text : str
        Committed content of the currently open document.
    entities : iterable of EditableEntity
        Characters, locations and world entries that edit blocks may target.
    """

    def __init__(self, active_text: str = "", entities: Iterable[EditableEntity] = ()):
        self.active_text = active_text
        self._entities: list[EditableEntity] = list(entities)

    @property
    def entities(self) -> list[EditableEntity]:
        return list(self._entities)

    def find(self, key: str) -> Optional[EditableEntity]:
        """Return the entity whose kind and name match *key*, if any."""
        kind, name = parse_target_key(key)
        if kind is TargetKind.ACTIVE:
            return None
        for entity in self._entities:
            if entity.kind is kind and _fold(entity.name) == name:
                return entity
        return None

    def resolve(self, target) -> Optional[EditableEntity]:
        return self.find(file_target_key(target))

    def base_text(self, key: str) -> str:
        """Committed text for *key*; unknown entities resolve to ``""``."""
        if key == ACTIVE_KEY:
            return self.active_text
        entity = self.find(key)
        if entity is None:
            logger.debug("No entity matches target key %s", key)
            return ""
        return entity.text

    def commit_text(self, key: str, text: str) -> None:
        """Store *text* as the committed content for *key*.

        Usable directly as a ``ChangeSetEngine`` commit sink.
        """
        if key == ACTIVE_KEY:
            self.active_text = text
            return
        entity = self.find(key)
        if entity is None:
            logger.warning("Dropping commit for unresolved target %s", key)
            return
        index = self._entities.index(entity)
        self._entities[index] = entity.model_copy(update={"text": text})
