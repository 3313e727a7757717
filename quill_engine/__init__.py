"""
quill_engine -- AI-proposed-edit lifecycle engine.

Turns streaming model responses into reviewable line edits, merges pending
edits per target without clobbering each other, applies canonical entry
patches through an injected store, and keeps the continuity-issue ledger in
sync with the knowledge base.

Submodules:
    line_edits          Apply / validate line edits, per-line change states.
    targets             File-target keys and case-insensitive name resolution.
    edit_parser         Streaming NDJSON edit-block parser.
    change_sets         Per-target pending change-set merge engine.
    patch_interpreter   Applies EntryPatch operations against a store.
    continuity_checker  Deterministic continuity rules.
    continuity_sync     Fingerprint-based issue ledger reconciliation.
    build_feed          Confidence-gated routing and review orchestration.
    memory_store        In-memory reference store (entries, relations, issues).
    config              EngineSettings and logging setup.
    errors              QuillEngineError hierarchy.
    models              Pydantic records (edits, canon, patches).
"""

__version__ = "0.3.0"
