"""
quill_engine/memory_store.py -- In-memory canonical store (NetworkX-backed).

Implements every storage capability the engine asks for
(``EntryPatchStore``, ``ContinuityStore``, ``BuildFeedStore``) over plain
dicts, with entry relationships kept in a ``networkx.MultiDiGraph``: entries
are nodes, each relationship is a keyed edge ``from --type--> to``.
Removing an entry removes its node and therefore every relationship that
touches it.

Useful for tests, previews, and applications that persist elsewhere.
Methods are ``async`` to match the protocols; none of them actually wait.

Usage::

    from quill_engine.memory_store import MemoryCanonStore

    store = MemoryCanonStore()
    await store.add_entry(Entry(id="e1", universe_id="u1", name="Elena"))
    store.related_entry_ids("e1")
"""

import logging
from typing import Any, Optional

import networkx as nx

from quill_engine.models.canon import (
    ContinuityIssue,
    CultureMembership,
    CultureVersion,
    Entry,
    IssueStatus,
    Mention,
    Relationship,
    Revision,
)
from quill_engine.models.patches import EntryPatch, PatchStatus
from quill_engine.utils import now_ms

logger = logging.getLogger(__name__)


class MemoryCanonStore:
    """Dict- and graph-backed implementation of the engine's store protocols."""

    def __init__(self):
        self.entries: dict[str, Entry] = {}
        self.issues: dict[str, ContinuityIssue] = {}
        self.culture_versions: dict[str, CultureVersion] = {}
        self.culture_memberships: dict[str, CultureMembership] = {}
        self.mentions: dict[str, Mention] = {}
        self.patches: dict[str, EntryPatch] = {}
        self.revisions: list[Revision] = []

        # Nodes are entry ids; edge keys are relationship ids
        self.graph: nx.MultiDiGraph = nx.MultiDiGraph()

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def add_entry(self, entry: Entry) -> None:
        self.entries[entry.id] = entry
        self.graph.add_node(entry.id, name=entry.name, entry_type=entry.entry_type)

    async def get_entry_by_id(self, entry_id: str) -> Optional[Entry]:
        return self.entries.get(entry_id)

    async def update_entry(self, entry_id: str, changes: dict[str, Any]) -> None:
        """Merge *changes* (Entry attribute names) into a stored entry.

        The merged record is re-validated, so a change of the wrong type
        raises ``pydantic.ValidationError`` and nothing is written.
        """
        entry = self.entries.get(entry_id)
        if entry is None:
            logger.warning("update_entry: no entry %s", entry_id)
            return
        updated = Entry.model_validate({**entry.model_dump(), **changes})
        self.entries[entry_id] = updated
        if entry_id in self.graph:
            self.graph.nodes[entry_id].update(
                name=updated.name, entry_type=updated.entry_type,
            )

    async def delete_entry(self, entry_id: str) -> None:
        self.entries.pop(entry_id, None)
        if entry_id in self.graph:
            self.graph.remove_node(entry_id)  # also removes its relationships

    async def list_entries_by_universe(self, universe_id: str) -> list[Entry]:
        return [e for e in self.entries.values() if e.universe_id == universe_id]

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def add_entry_relation(self, relation: Relationship) -> None:
        self.graph.add_edge(
            relation.from_id,
            relation.to_id,
            key=relation.id,
            relation=relation,
        )

    async def remove_entry_relation(self, relation_id: str) -> None:
        for source, target, key in list(self.graph.edges(keys=True)):
            if key == relation_id:
                self.graph.remove_edge(source, target, key=key)
                return
        logger.debug("remove_entry_relation: no relation %s", relation_id)

    def list_relations(self, entry_id: Optional[str] = None) -> list[Relationship]:
        """All relationships, or only those touching *entry_id*."""
        if entry_id is None:
            edges = self.graph.edges(data="relation")
        elif entry_id in self.graph:
            edges = list(self.graph.out_edges(entry_id, data="relation"))
            edges += self.graph.in_edges(entry_id, data="relation")
        else:
            return []
        return [relation for _, _, relation in edges]

    def related_entry_ids(self, entry_id: str) -> set[str]:
        """Ids of entries linked to *entry_id* in either direction."""
        if entry_id not in self.graph:
            return set()
        return set(nx.all_neighbors(self.graph, entry_id)) - {entry_id}

    # ------------------------------------------------------------------
    # Continuity ledger
    # ------------------------------------------------------------------

    async def add_continuity_issue(self, issue: ContinuityIssue) -> None:
        self.issues[issue.id] = issue

    async def update_continuity_issue_status(
        self, issue_id: str, status: IssueStatus, resolution: Optional[str] = None,
    ) -> None:
        issue = self.issues.get(issue_id)
        if issue is None:
            logger.warning("update_continuity_issue_status: no issue %s", issue_id)
            return
        changes: dict[str, Any] = {"status": IssueStatus(status), "updated_at": now_ms()}
        if resolution is not None:
            changes["resolution"] = resolution
        self.issues[issue_id] = issue.model_copy(update=changes)

    async def list_continuity_issues_by_universe(
        self, universe_id: str,
    ) -> list[ContinuityIssue]:
        return [i for i in self.issues.values() if i.universe_id == universe_id]

    async def add_revision(self, revision: Revision) -> None:
        self.revisions.append(revision)

    # ------------------------------------------------------------------
    # Cultures, mentions
    # ------------------------------------------------------------------

    async def add_culture_version(self, version: CultureVersion) -> None:
        self.culture_versions[version.id] = version

    async def add_culture_membership(self, membership: CultureMembership) -> None:
        self.culture_memberships[membership.id] = membership

    async def list_culture_memberships_by_character(
        self, character_entry_id: str,
    ) -> list[CultureMembership]:
        return [
            m for m in self.culture_memberships.values()
            if m.character_entry_id == character_entry_id
        ]

    async def add_mention(self, mention: Mention) -> None:
        self.mentions[mention.id] = mention

    async def list_mentions_by_scene(self, scene_id: str) -> list[Mention]:
        return [m for m in self.mentions.values() if m.scene_id == scene_id]

    # ------------------------------------------------------------------
    # Patches
    # ------------------------------------------------------------------

    async def add_patch(self, patch: EntryPatch) -> None:
        self.patches[patch.id] = patch

    async def get_patch_by_id(self, patch_id: str) -> Optional[EntryPatch]:
        return self.patches.get(patch_id)

    async def update_patch_status(self, patch_id: str, status: PatchStatus) -> None:
        patch = self.patches.get(patch_id)
        if patch is None:
            logger.debug("update_patch_status: patch %s was never stored", patch_id)
            return
        status = PatchStatus(status)
        resolved_at = None if status is PatchStatus.PENDING else now_ms()
        self.patches[patch_id] = patch.model_copy(
            update={"status": status, "resolved_at": resolved_at},
        )
