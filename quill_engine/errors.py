"""
quill_engine/errors.py -- Exceptions raised by the edit lifecycle engine.

Most malformed input is recovered locally (bad edit headers become text,
unresolvable patch operations are skipped), so these are reserved for
programming errors the caller has to fix.
"""


class QuillEngineError(ValueError):
    """Base class for engine errors."""


class OverlappingEditsError(QuillEngineError):
    """Raised when a queued change set holds overlapping or out-of-order edits."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "Line edits overlap.")


class UnknownTargetError(QuillEngineError):
    """Raised when a file target kind has no key mapping."""
