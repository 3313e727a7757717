"""
quill_engine/build_feed.py -- Review queue for canonical patches.

Ties the patch interpreter to the continuity ledger for one universe:
every patch that gets applied is followed by a continuity sweep, so the
issue list always reflects the canon the user just accepted.

    submit(patch)  persist; auto-apply when the patch recommends it and
                   auto-apply is enabled in the settings
    accept(patch)  apply, then sweep
    reject(patch)  record the rejection only
    sweep()        ``sync_continuity_issues`` for the universe

Accept and reject read the patch status back from the store, so repeating
either on a patch object the caller still holds is a no-op once the patch
has been resolved.  Store failures propagate.  The interpreter writes the patch status last, so
a failed accept leaves the patch pending and can simply be retried.

Usage::

    from quill_engine.build_feed import BuildFeed

    feed = BuildFeed(store, "universe_1")
    applied = await feed.submit(patch)
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from quill_engine.config import EngineSettings
from quill_engine.continuity_sync import (
    ContinuityStore,
    ContinuitySyncReport,
    sync_continuity_issues,
)
from quill_engine.models.patches import EntryPatch, PatchStatus
from quill_engine.patch_interpreter import (
    EntryPatchStore,
    apply_entry_patch,
    reject_entry_patch,
)

logger = logging.getLogger(__name__)


class BuildFeedStore(EntryPatchStore, ContinuityStore, Protocol):
    async def add_patch(self, patch: EntryPatch) -> None: ...

    async def get_patch_by_id(self, patch_id: str) -> Optional[EntryPatch]: ...


class BuildFeed:
    """Routes patches for one universe.

    Parameters
    ----------
    store : BuildFeedStore
        Injected storage capability.
    universe_id : str
        Universe whose continuity ledger is swept after each apply.
    settings : EngineSettings, optional
        Defaults to ``EngineSettings()``.
    """

    def __init__(
        self,
        store: BuildFeedStore,
        universe_id: str,
        settings: Optional[EngineSettings] = None,
    ):
        self.store = store
        self.universe_id = universe_id
        self.settings = settings or EngineSettings()
        self.last_report: Optional[ContinuitySyncReport] = None

    async def submit(self, patch: EntryPatch) -> bool:
        """Persist *patch*; return ``True`` if it was applied right away."""
        await self.store.add_patch(patch)
        if not (patch.auto_commit and self.settings.auto_apply_enabled):
            logger.debug("Queued patch %s for review", patch.id)
            return False
        logger.info("Auto-applying patch %s (confidence %.2f)", patch.id, patch.confidence)
        await self._apply(patch)
        return True

    async def accept(self, patch: EntryPatch) -> Optional[ContinuitySyncReport]:
        """Apply a pending patch and sweep; ``None`` if it was already resolved."""
        status = await self._current_status(patch)
        if status is not PatchStatus.PENDING:
            logger.debug("Ignoring accept of %s patch %s", status.value, patch.id)
            return None
        return await self._apply(patch)

    async def reject(self, patch: EntryPatch) -> None:
        status = await self._current_status(patch)
        if status is not PatchStatus.PENDING:
            logger.debug("Ignoring reject of %s patch %s", status.value, patch.id)
            return
        await reject_entry_patch(patch, self.store)

    async def sweep(self) -> ContinuitySyncReport:
        self.last_report = await sync_continuity_issues(self.store, self.universe_id)
        return self.last_report

    async def _current_status(self, patch: EntryPatch) -> PatchStatus:
        """Status as recorded by the store; the caller's copy may be stale."""
        stored = await self.store.get_patch_by_id(patch.id)
        return stored.status if stored is not None else patch.status

    async def _apply(self, patch: EntryPatch) -> ContinuitySyncReport:
        await apply_entry_patch(patch, self.store)
        return await self.sweep()
