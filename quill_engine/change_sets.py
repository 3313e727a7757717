"""
quill_engine/change_sets.py -- Per-target pending change-set merge engine.

Keeps, for every target key:

    committed base   the persisted text (document content / entity field)
    pending queue    change sets in arrival order, never deleted
    working copy     all still-pending edits folded, in arrival order,
                     onto the committed base

The working copy is always rebuilt from the committed base rather than
patched incrementally, so partial renders never compound.  Accepting one
change set commits only that change set's edits and rebases the remaining
pending ones onto the new base; rejecting one rebuilds from the unchanged
base.  Operations on ids that are unknown or already resolved do nothing,
which makes duplicate Accept / Reject clicks harmless.

For non-document targets (characters, locations, world entries) the working
copy doubles as the entity draft shown in the editor.  It is discarded as
soon as nothing is pending for that key.

Usage::

    from quill_engine.change_sets import ChangeSetEngine
    from quill_engine.targets import TargetResolver

    resolver = TargetResolver(active_text=chapter_text)
    engine = ChangeSetEngine(resolver.base_text, commit_sink=resolver.commit_text)
    engine.apply_incoming_edit(change_set)
    engine.accept_change(change_set.id)
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from quill_engine.errors import OverlappingEditsError
from quill_engine.line_edits import LineChangeState, apply_edits, compute_line_states, validate_edits
from quill_engine.models.edits import ChangeSet, ChangeStatus
from quill_engine.targets import ACTIVE_KEY, file_target_key

logger = logging.getLogger(__name__)


class ChangeSetEngine:
    """Merges pending AI change sets per target.

    Parameters
    ----------
    base_resolver : callable(str) -> str
        Returns the committed text for a target key the first time the
        engine sees that key (e.g. ``TargetResolver.base_text``).
    commit_sink : callable(str, str), optional
        Called with ``(key, new_base)`` whenever a base is committed, so the
        caller can persist the document or entity field.
    """

    def __init__(
        self,
        base_resolver: Callable[[str], str],
        commit_sink: Optional[Callable[[str, str], None]] = None,
    ):
        self._resolve_base = base_resolver
        self._commit_sink = commit_sink
        self._change_sets: dict[str, list[ChangeSet]] = {}
        self._committed: dict[str, str] = {}
        self._working: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def committed_base(self, key: str) -> str:
        if key not in self._committed:
            self._committed[key] = self._resolve_base(key)
        return self._committed[key]

    def working_copy(self, key: str) -> str:
        """Committed base plus every pending edit for *key*."""
        if key in self._working:
            return self._working[key]
        return self.committed_base(key)

    def change_sets(self, key: str) -> list[ChangeSet]:
        """Every change set ever queued for *key*, in arrival order."""
        return list(self._change_sets.get(key, []))

    def pending_for(self, key: str) -> list[ChangeSet]:
        return [cs for cs in self._change_sets.get(key, []) if cs.is_pending]

    def resolved_for(self, key: str) -> list[ChangeSet]:
        """Accepted and rejected change sets, kept for the audit list."""
        return [cs for cs in self._change_sets.get(key, []) if not cs.is_pending]

    def keys(self) -> list[str]:
        return list(self._change_sets)

    def get(self, change_set_id: str) -> Optional[ChangeSet]:
        located = self._locate(change_set_id)
        if located is None:
            return None
        key, index = located
        return self._change_sets[key][index]

    @property
    def entity_drafts(self) -> dict[str, str]:
        """Working copies of non-document targets that still have pending edits."""
        return {
            key: text
            for key, text in self._working.items()
            if key != ACTIVE_KEY
        }

    def line_states(self, key: str) -> list[LineChangeState]:
        """Editor decorations for *key* based on its pending change sets."""
        return compute_line_states(self.committed_base(key), self.pending_for(key))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_base(self, key: str, text: str) -> None:
        """Record a user edit to the committed text and rebase pending edits."""
        self._committed[key] = text
        self._rebuild(key)

    def apply_incoming_edit(self, change_set: ChangeSet) -> str:
        """Queue *change_set* and return its target key.

        Raises
        ------
        OverlappingEditsError
            If the change set's own edits overlap each other or are not
            listed bottom-up (see ``validate_edits``).
        """
        problems = validate_edits(change_set.edits)
        if problems:
            raise OverlappingEditsError(problems)

        key = file_target_key(change_set.file_target)
        self.committed_base(key)
        self._change_sets.setdefault(key, []).append(change_set)
        self._rebuild(key)
        logger.debug("Queued change set %s for %s", change_set.id, key)
        return key

    def accept_change(self, change_set_id: str) -> Optional[ChangeSet]:
        """Commit one pending change set and rebase the rest onto the new base.

        Returns the accepted change set, or ``None`` if the id is unknown or
        already resolved.
        """
        located = self._locate_pending(change_set_id)
        if located is None:
            return None
        key, index = located
        matched = self._change_sets[key][index]

        self._commit(key, apply_edits(self.committed_base(key), matched.edits))
        accepted = self._set_status(key, index, ChangeStatus.ACCEPTED)
        self._rebuild(key)
        logger.info("Accepted change set %s for %s", change_set_id, key)
        return accepted

    def reject_change(self, change_set_id: str) -> Optional[ChangeSet]:
        """Discard one pending change set; the committed base is untouched."""
        located = self._locate_pending(change_set_id)
        if located is None:
            return None
        key, index = located

        rejected = self._set_status(key, index, ChangeStatus.REJECTED)
        self._rebuild(key)
        logger.info("Rejected change set %s for %s", change_set_id, key)
        return rejected

    def accept_all_changes(self, key: str) -> int:
        """Commit the full working copy of *key*; returns how many were accepted."""
        pending = self._pending_indexes(key)
        if not pending:
            return 0
        self._commit(key, self.working_copy(key))
        for index in pending:
            self._set_status(key, index, ChangeStatus.ACCEPTED)
        self._rebuild(key)
        logger.info("Accepted %d change set(s) for %s", len(pending), key)
        return len(pending)

    def reject_all_changes(self, key: str) -> int:
        """Drop every pending change set of *key*; returns how many were rejected."""
        pending = self._pending_indexes(key)
        if not pending:
            return 0
        for index in pending:
            self._set_status(key, index, ChangeStatus.REJECTED)
        self._rebuild(key)
        logger.info("Rejected %d change set(s) for %s", len(pending), key)
        return len(pending)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _locate(self, change_set_id: str) -> Optional[tuple[str, int]]:
        for key, queue in self._change_sets.items():
            for index, change_set in enumerate(queue):
                if change_set.id == change_set_id:
                    return key, index
        return None

    def _locate_pending(self, change_set_id: str) -> Optional[tuple[str, int]]:
        located = self._locate(change_set_id)
        if located is None:
            logger.debug("Ignoring unknown change set %s", change_set_id)
            return None
        key, index = located
        if not self._change_sets[key][index].is_pending:
            logger.debug("Ignoring already-resolved change set %s", change_set_id)
            return None
        return located

    def _pending_indexes(self, key: str) -> list[int]:
        return [
            index
            for index, change_set in enumerate(self._change_sets.get(key, []))
            if change_set.is_pending
        ]

    def _set_status(self, key: str, index: int, status: ChangeStatus) -> ChangeSet:
        updated = self._change_sets[key][index].model_copy(update={"status": status})
        self._change_sets[key][index] = updated
        return updated

    def _commit(self, key: str, text: str) -> None:
        self._committed[key] = text
        if self._commit_sink is not None:
            self._commit_sink(key, text)

    def _rebuild(self, key: str) -> None:
        pending = self.pending_for(key)
        if not pending:
            self._working.pop(key, None)
            return
        text = self.committed_base(key)
        for change_set in pending:
            text = apply_edits(text, change_set.edits)
        self._working[key] = text
