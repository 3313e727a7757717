"""
Tests for quill_engine/models/patches.py -- EntryPatch model and factories.

Validates:
    - legacy operation names and field synonyms normalize to the current form
    - malformed operations are dropped, not raised
    - create_entry_patch confidence / auto-commit defaults
    - build_entry_patch_from_raw clamping and entry type normalization
    - camelCase wire round trip
"""

import pytest
from pydantic import ValidationError

from quill_engine.models.canon import SourceRef, normalize_entry_type
from quill_engine.models.patches import (
    AddRelationOp,
    CreateEntryOp,
    DeleteOp,
    EntryPatch,
    MarkContradictionOp,
    PatchStatus,
    RemoveRelationOp,
    UpdateEntryOp,
    build_entry_patch_from_raw,
    create_entry_patch,
    normalize_operation,
)

SOURCE = SourceRef(kind="chat_message", id="msg_1")


class TestNormalizeOperation:
    """Tests for normalize_operation."""

    def test_legacy_create(self):
        op = normalize_operation({"op": "create", "docType": "character", "fields": {"name": "Elena"}})
        assert isinstance(op, CreateEntryOp)
        assert op.entry_type == "character"
        assert op.entry.name == "Elena"

    def test_current_create(self):
        op = normalize_operation({"op": "create-entry", "entryType": "location", "entry": {"name": "Harbor"}})
        assert op.entry_type == "location"
        assert op.entry.name == "Harbor"

    def test_missing_op_defaults_to_create(self):
        op = normalize_operation({"entryType": "item", "entry": {"name": "Lantern"}})
        assert isinstance(op, CreateEntryOp)

    def test_create_without_payload_is_kept_unresolved(self):
        op = normalize_operation({"op": "create"})
        assert isinstance(op, CreateEntryOp)
        assert op.entry is None

    def test_legacy_update_uses_doc_id(self):
        op = normalize_operation({"op": "update", "docId": "e1", "field": "summary", "newValue": "x"})
        assert op == UpdateEntryOp(entry_id="e1", field="summary", new_value="x")

    def test_legacy_relationship_ops(self):
        add = normalize_operation({
            "op": "add-relationship",
            "relationship": {"from": "a", "to": "b", "type": "ally_of"},
        })
        remove = normalize_operation({"op": "remove-relationship", "relationshipId": "rel_1"})
        assert isinstance(add, AddRelationOp)
        assert add.relation.from_id == "a"
        assert remove == RemoveRelationOp(relation_id="rel_1")

    def test_delete_and_contradiction_accept_entry_id(self):
        assert normalize_operation({"op": "delete", "entryId": "e1"}) == DeleteOp(doc_id="e1")
        op = normalize_operation({"op": "mark-contradiction", "entryId": "e1", "note": "n"})
        assert op == MarkContradictionOp(doc_id="e1", note="n")

    def test_unknown_op_dropped(self):
        assert normalize_operation({"op": "teleport", "entryId": "e1"}) is None

    def test_missing_required_field_dropped(self):
        assert normalize_operation({"op": "update-entry", "field": "name"}) is None

    def test_non_dict_dropped(self):
        assert normalize_operation("create") is None

    def test_model_instances_pass_through(self):
        op = DeleteOp(doc_id="e1")
        assert normalize_operation(op) is op


class TestEntryPatch:
    """Tests for EntryPatch validation."""

    def test_operations_are_normalized_and_filtered(self):
        patch = EntryPatch.model_validate({
            "operations": [
                {"op": "create", "docType": "character", "fields": {"name": "Elena"}},
                {"op": "bogus"},
            ],
            "sourceRef": {"kind": "chat_message", "id": "msg_1"},
            "confidence": 0.7,
        })
        assert [op.op for op in patch.operations] == ["create-entry"]
        assert patch.status == PatchStatus.PENDING

    def test_confidence_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            EntryPatch(confidence=1.5)

    def test_wire_dump_uses_camel_case(self):
        patch = EntryPatch(operations=[{"op": "delete", "docId": "e1"}], source_ref=SOURCE)
        wire = patch.to_wire()
        assert wire["sourceRef"] == {"kind": "chat_message", "id": "msg_1"}
        assert wire["operations"] == [{"op": "delete", "docId": "e1"}]
        assert "autoCommit" in wire

    def test_wire_round_trip(self):
        patch = EntryPatch(operations=[{"op": "resolve-issue", "issueId": "i1"}], source_ref=SOURCE)
        assert EntryPatch.model_validate(patch.to_wire()) == patch


class TestFactories:
    """Tests for create_entry_patch and build_entry_patch_from_raw."""

    def test_default_confidence_with_operations(self):
        patch = create_entry_patch(SOURCE, [{"op": "delete", "docId": "e1"}])
        assert patch.confidence == pytest.approx(0.65)
        assert patch.auto_commit is False

    def test_empty_patch_has_zero_confidence(self):
        patch = create_entry_patch(SOURCE, [])
        assert patch.confidence == 0
        assert patch.auto_commit is False

    def test_high_confidence_auto_commits(self):
        patch = create_entry_patch(SOURCE, [{"op": "delete", "docId": "e1"}], confidence=0.9)
        assert patch.auto_commit is True

    def test_threshold_is_inclusive(self):
        patch = create_entry_patch(
            SOURCE, [{"op": "delete", "docId": "e1"}], confidence=0.5, auto_commit_threshold=0.5,
        )
        assert patch.auto_commit is True

    def test_invalid_confidence_raises(self):
        with pytest.raises(ValidationError):
            create_entry_patch(SOURCE, [], confidence=-0.1)

    def test_from_raw_clamps_confidence(self):
        patch = build_entry_patch_from_raw({"op": "delete", "docId": "e1", "confidence": 4})
        assert patch.confidence == 1.0
        assert patch.auto_commit is True

    def test_from_raw_normalizes_entry_type(self):
        patch = build_entry_patch_from_raw(
            {"op": "create", "docType": "faction", "fields": {"name": "The Veil"}},
            SOURCE,
        )
        op = patch.operations[0]
        assert op.entry_type == "organization"
        assert op.entry.entry_type == "organization"
        assert patch.source_ref == SOURCE

    def test_from_raw_unresolvable_returns_none(self):
        assert build_entry_patch_from_raw({"op": "create"}) is None
        assert build_entry_patch_from_raw({"op": "nonsense"}) is None

    @pytest.mark.parametrize("raw, expected", [
        ("faction", "organization"),
        ("magic_system", "system"),
        ("Character", "character"),
        ("dragon", "culture"),
        (None, "culture"),
    ])
    def test_normalize_entry_type(self, raw, expected):
        assert normalize_entry_type(raw) == expected
