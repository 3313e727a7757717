"""
quill_engine/line_edits.py -- Applying line edits to text.

``apply_edits`` applies each edit to the line list **in the order given**;
every edit's indices are read against the text as it stands after the edits
before it.  It does not sort and does not check anything.
``validate_edits`` reports edits that overlap, or that are listed top-down
so that an earlier edit shifts the lines a later one names, so callers can
refuse them before they become a pending change set.

Usage::

    from quill_engine.line_edits import apply_edits
    from quill_engine.models.edits import ReplaceEdit

    apply_edits("a\\nb\\nc", [ReplaceEdit(start=1, end=2, new_lines=["B"])])
    # -> "a\\nB\\nc"
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Sequence

from quill_engine.models.edits import ChangeSet, DeleteEdit, InsertEdit, ReplaceEdit


class LineChangeState(str, Enum):
    """Decoration of one editor line while change sets are pending."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


def _insert_position(edit: InsertEdit, line_count: int) -> int:
    return max(0, min(edit.after_index + 1, line_count))


def apply_edit_to_lines(lines: list[str], edit) -> None:
    """Apply a single edit to *lines* in place."""
    if isinstance(edit, ReplaceEdit):
        lines[edit.start:edit.end] = edit.new_lines
    elif isinstance(edit, InsertEdit):
        at = _insert_position(edit, len(lines))
        lines[at:at] = edit.new_lines
    elif isinstance(edit, DeleteEdit):
        del lines[edit.start:edit.end]
    else:
        raise TypeError(f"Not a line edit: {edit!r}")


def apply_edits(base: str, edits: Iterable) -> str:
    """Return *base* with *edits* applied in the order given.

    Parameters
    ----------
    base : str
        The text to edit.  Split on ``"\\n"``; an empty string is one
        empty line.
    edits : iterable of LineEdit
        0-based edits, end-exclusive.

    Returns
    -------
    str
    """
    lines = base.split("\n")
    for edit in edits:
        apply_edit_to_lines(lines, edit)
    return "\n".join(lines)


# ------------------------------------------------------------------
# Conflict validation
# ------------------------------------------------------------------

def _span(edit) -> tuple[int, int]:
    """Half-open span an edit touches; inserts are zero-width points."""
    if isinstance(edit, InsertEdit):
        point = edit.after_index + 1
        return point, point
    return edit.start, edit.end


def _describe(edit) -> str:
    if isinstance(edit, InsertEdit):
        return f"insert after line {edit.after_index + 1}"
    return f"{edit.type} lines {edit.start + 1}-{edit.end}"


def _clashes(a, b) -> bool:
    """True when *a* and *b* touch the same lines of the original text."""
    a_start, a_end = _span(a)
    b_start, b_end = _span(b)
    a_point = isinstance(a, InsertEdit)
    b_point = isinstance(b, InsertEdit)
    if a_point and b_point:
        return a_start == b_start
    if a_point:
        return b_start < a_start < b_end
    if b_point:
        return a_start < b_start < a_end
    return a_start < b_end and b_start < a_end


def _stays_above(later, earlier) -> bool:
    """True when *later* only touches lines that *earlier* has not shifted."""
    later_start, later_end = _span(later)
    anchor = _span(earlier)[0]
    if isinstance(later, InsertEdit) and isinstance(earlier, InsertEdit):
        return later_start < anchor
    return later_end <= anchor


def validate_edits(edits: Sequence) -> list[str]:
    """Return a human-readable problem for each conflicting pair of edits.

    ``apply_edits`` applies edits one after another, so every edit is
    expressed against the original text only while the edits before it
    sit further down the document.  Edits must therefore run bottom-up:
    each edit ends at or above the first line touched by every edit
    before it.  Pairs that share a line are reported as overlaps; pairs
    that are merely out of order are reported as such.  An empty list
    means applying the edits in the given order touches exactly the
    original lines each edit names.
    """
    problems: list[str] = []
    for i in range(len(edits)):
        for j in range(i + 1, len(edits)):
            a, b = edits[i], edits[j]
            if _clashes(a, b):
                problems.append(
                    f"Edit {i + 1} ({_describe(a)}) overlaps edit {j + 1} ({_describe(b)})."
                )
            elif not _stays_above(b, a):
                problems.append(
                    f"Edit {j + 1} ({_describe(b)}) must come before edit {i + 1} "
                    f"({_describe(a)}); edits apply bottom-up."
                )
    return problems


# ------------------------------------------------------------------
# Editor decorations
# ------------------------------------------------------------------

def compute_line_states(text: str, pending_sets: Iterable[ChangeSet]) -> list[LineChangeState]:
    """Compute per-line decorations for *text* from pending change sets.

    The result starts with one entry per line of *text*; replacements that
    grow a range and inserts splice extra ``ADDED`` entries in, so the list
    lines up with the working copy for the common single-edit case.
    """
    states = [LineChangeState.UNCHANGED] * len(text.split("\n"))

    for change_set in pending_sets:
        if not change_set.is_pending:
            continue
        for edit in change_set.edits:
            if isinstance(edit, ReplaceEdit):
                for i in range(edit.start, min(edit.end, len(states))):
                    states[i] = LineChangeState.MODIFIED
                extra = len(edit.new_lines) - (edit.end - edit.start)
                if extra > 0:
                    at = min(edit.end, len(states))
                    states[at:at] = [LineChangeState.ADDED] * extra
            elif isinstance(edit, InsertEdit):
                at = _insert_position(edit, len(states))
                states[at:at] = [LineChangeState.ADDED] * len(edit.new_lines)
            elif isinstance(edit, DeleteEdit):
                for i in range(edit.start, min(edit.end, len(states))):
                    states[i] = LineChangeState.DELETED

    return states
