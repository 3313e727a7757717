"""
Shared pytest fixtures for the quill_engine test suite.

Provides:
    - memory_store: an empty MemoryCanonStore
    - make_entry: factory for Entry records in the test universe
    - timeline_entries: three timeline events on days 1, 5 and 10
    - run: helper that drives a coroutine to completion
"""

import asyncio
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure quill_engine/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from quill_engine.memory_store import MemoryCanonStore  # noqa: E402
from quill_engine.models.canon import Entry  # noqa: E402
from quill_engine.utils import make_slug  # noqa: E402

UNIVERSE_ID = "universe_test"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def run():
    """Return a callable that runs a coroutine on a fresh event loop."""
    return asyncio.run


@pytest.fixture
def memory_store():
    """Return an empty in-memory canonical store."""
    return MemoryCanonStore()


@pytest.fixture
def make_entry():
    """Return a factory building entries in the test universe.

    Slug defaults to the slugified name; any Entry attribute may be
    overridden by keyword.
    """
    def _make(entry_id, name, entry_type="character", **fields):
        fields.setdefault("slug", make_slug(name))
        fields.setdefault("universe_id", UNIVERSE_ID)
        return Entry(id=entry_id, name=name, entry_type=entry_type, **fields)
    return _make


@pytest.fixture
def timeline_entries(make_entry):
    """Three timeline events: ev_1 (day 1), ev_5 (day 5), ev_10 (day 10)."""
    return [
        make_entry("ev_1", "Founding", "timeline_event", details={"relativeDay": 1}),
        make_entry("ev_5", "Siege", "timeline_event", details={"relativeDay": 5}),
        make_entry("ev_10", "Coronation", "timeline_event", details={"relative_day": 10}),
    ]
