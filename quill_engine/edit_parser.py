"""
quill_engine/edit_parser.py -- Streaming edit-block parser.

Consumes a newline-delimited JSON chat stream (``{"message": {"content":
"..."}}`` per line) and yields two kinds of events:

    TokenEvent(text)                              plain text for the chat bubble
    EditBlockEvent(edit, file_target, commentary) a parsed line edit

Edit fence format (1-based line numbers, as written by the model)::

    ```edit line=N-M            replace lines N..M (inclusive)
    ```edit line=N              replace line N
    ```edit line=N+             insert after line N (N=0 prepends)
    ```edit line=N-M delete     delete lines N..M
    ```edit line=1 file=character:Elena

Omitting ``file=`` targets the active document.  A fence whose header does
not parse is passed through as ordinary text, as is any non-``edit`` fence.

Truncation is a normal way for a stream to end: an unclosed block that has
a mode and at least one body line is still emitted as an edit; otherwise
its raw lines come back as a final text token.

Usage::

    from quill_engine.edit_parser import parse_edit_stream, EditBlockEvent

    for event in parse_edit_stream(response.iter_lines()):
        if isinstance(event, EditBlockEvent):
            engine.apply_incoming_edit(ChangeSet(file_target=event.file_target,
                                                 edits=[event.edit]))
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from dataclasses import dataclass, field
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, Optional, Union

import jsonschema

from quill_engine.models.edits import ActiveTarget, DeleteEdit, FileTarget, InsertEdit, ReplaceEdit
from quill_engine.targets import make_file_target

logger = logging.getLogger(__name__)

FENCE_OPEN = "```edit"
FENCE_CLOSE = "```"

_FILE_QUALIFIER = re.compile(r"\bfile=(\S+)")
_NUMBER = re.compile(r"\s*(\d+)\s*")

# Only message.content is consumed; every other field is ignored.
NDJSON_RECORD_SCHEMA = {
    "type": "object",
    "required": ["message"],
    "properties": {
        "message": {
            "type": "object",
            "properties": {"content": {"type": "string"}},
        },
    },
}

_record_validator = jsonschema.Draft7Validator(NDJSON_RECORD_SCHEMA)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenEvent:
    """Plain text to append to the chat bubble."""
    text: str


@dataclass(frozen=True)
class EditBlockEvent:
    """A parsed edit block plus the commentary emitted since the last one."""
    edit: Union[ReplaceEdit, InsertEdit, DeleteEdit]
    file_target: FileTarget = field(default_factory=ActiveTarget)
    commentary: str = ""


ParsedEvent = Union[TokenEvent, EditBlockEvent]


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EditMode:
    """0-based mode of an open edit block (``kind`` is replace/insert/delete)."""
    kind: str
    start: int = 0
    end: int = 0

    def build(self, lines: list[str]):
        if self.kind == "replace":
            return ReplaceEdit(start=self.start, end=self.end, new_lines=list(lines))
        if self.kind == "insert":
            return InsertEdit(after_index=self.start, new_lines=list(lines))
        return DeleteEdit(start=self.start, end=self.end)


@dataclass(frozen=True)
class EditHeader:
    mode: EditMode
    file_target: FileTarget


def _parse_number(text: str) -> Optional[int]:
    match = _NUMBER.fullmatch(text)
    return int(match.group(1)) if match else None


def parse_header(header_text: str) -> Optional[EditHeader]:
    """Parse the part of a fence line after ```` ```edit ````.

    Returns ``None`` when the header is malformed (non-numeric line numbers,
    an end before the start, a zero replace line), in which case the fence
    line is treated as text.

    Examples::

        parse_header("line=3-5").mode      # EditMode("replace", 2, 5)
        parse_header("line=4+").mode       # EditMode("insert", 3)
        parse_header("line=2 delete").mode # EditMode("delete", 1, 2)
    """
    rest = header_text.strip()

    target = ActiveTarget()
    qualifier = _FILE_QUALIFIER.search(rest)
    if qualifier:
        raw = qualifier.group(1)
        rest = (rest[:qualifier.start()] + rest[qualifier.end():]).strip()
        kind, sep, name = raw.partition(":")
        if sep:
            target = make_file_target(kind, name) or ActiveTarget()

    if not rest.startswith("line="):
        return None
    rest = rest[len("line="):]

    is_delete = rest.endswith(" delete")
    if is_delete:
        rest = rest[: -len(" delete")].strip()

    if rest.endswith("+"):
        n = _parse_number(rest[:-1])
        if n is None:
            return None
        return EditHeader(EditMode("insert", start=n - 1), target)

    kind = "delete" if is_delete else "replace"
    start_text, dash, end_text = rest.partition("-")
    start_n = _parse_number(start_text)
    if dash:
        end_n = _parse_number(end_text)
        if start_n is None or end_n is None or start_n < 1 or end_n < start_n:
            return None
        return EditHeader(EditMode(kind, start=start_n - 1, end=end_n), target)

    if start_n is None or start_n < 1:
        return None
    return EditHeader(EditMode(kind, start=start_n - 1, end=start_n), target)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class EditStreamParser:
    """Push-style parser: feed content fragments, collect events.

    One parser instance handles exactly one response stream.
    """

    def __init__(self):
        self._line_buffer = ""
        self._commentary = ""
        self._header: Optional[EditHeader] = None
        self._fence_line = ""
        self._body: list[str] = []

    @property
    def in_edit_block(self) -> bool:
        return self._header is not None

    def feed(self, content: str) -> list[ParsedEvent]:
        """Append a content fragment and return events for completed lines."""
        events: list[ParsedEvent] = []
        if not content:
            return events
        self._line_buffer += content
        while "\n" in self._line_buffer:
            line, self._line_buffer = self._line_buffer.split("\n", 1)
            events.extend(self._process_line(line))
        return events

    def finish(self) -> list[ParsedEvent]:
        """Flush buffered content at end of stream (including truncation)."""
        events: list[ParsedEvent] = []
        tail, self._line_buffer = self._line_buffer, ""

        if self._header is None:
            if tail:
                events.append(TokenEvent(tail))
            return events

        if tail:
            self._body.append(tail)

        header, body = self._header, self._body
        if body:
            logger.debug("Stream ended inside an edit block; emitting %d line(s)", len(body))
            events.append(EditBlockEvent(
                edit=header.mode.build(body),
                file_target=header.file_target,
                commentary=self._commentary,
            ))
            self._commentary = ""
        else:
            logger.debug("Stream ended inside an empty edit block; recovering as text")
            events.append(TokenEvent(self._fence_line))
        self._reset_block()
        return events

    def _reset_block(self) -> None:
        self._header = None
        self._fence_line = ""
        self._body = []

    def _emit_text(self, line: str) -> TokenEvent:
        text = line + "\n"
        self._commentary += text
        return TokenEvent(text)

    def _process_line(self, line: str) -> list[ParsedEvent]:
        if self._header is not None:
            if line.strip() == FENCE_CLOSE:
                event = EditBlockEvent(
                    edit=self._header.mode.build(self._body),
                    file_target=self._header.file_target,
                    commentary=self._commentary,
                )
                self._commentary = ""
                self._reset_block()
                return [event]
            self._body.append(line)
            return []

        if line.startswith(FENCE_OPEN):
            header = parse_header(line[len(FENCE_OPEN):])
            if header is not None:
                self._header = header
                self._fence_line = line
                self._body = []
                return []
            logger.debug("Malformed edit fence treated as text: %r", line)
        return [self._emit_text(line)]


# ---------------------------------------------------------------------------
# NDJSON transport
# ---------------------------------------------------------------------------

def _content_of(json_line: str) -> str:
    """Return ``message.content`` of one NDJSON record, or ``""``."""
    json_line = json_line.strip()
    if not json_line:
        return ""
    try:
        record = json.loads(json_line)
    except json.JSONDecodeError:
        logger.debug("Skipping unparseable stream line: %r", json_line[:80])
        return ""
    if not _record_validator.is_valid(record):
        logger.debug("Skipping stream record without message content")
        return ""
    return record["message"].get("content", "")


class NdjsonDecoder:
    """Reassembles NDJSON records from arbitrarily split byte/str chunks."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> list[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        *complete, self._buffer = self._buffer.split("\n")
        return [c for c in map(_content_of, complete) if c]

    def close(self) -> list[str]:
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        content = _content_of(tail)
        return [content] if content else []


def iter_ndjson_contents(chunks: Iterable[Union[bytes, str]]) -> Iterator[str]:
    """Yield the content fragments carried by an NDJSON chunk stream."""
    decoder = NdjsonDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.close()


def iter_content_events(fragments: Iterable[str]) -> Iterator[ParsedEvent]:
    """Parse already-decoded content fragments (no NDJSON framing)."""
    parser = EditStreamParser()
    for fragment in fragments:
        yield from parser.feed(fragment)
    yield from parser.finish()


def parse_edit_stream(chunks: Iterable[Union[bytes, str]]) -> Iterator[ParsedEvent]:
    """Parse an NDJSON chat stream, yielding events as lines complete."""
    yield from iter_content_events(iter_ndjson_contents(chunks))


async def aparse_edit_stream(
    chunks: AsyncIterable[Union[bytes, str]],
) -> AsyncIterator[ParsedEvent]:
    """Async-generator form of ``parse_edit_stream``."""
    decoder = NdjsonDecoder()
    parser = EditStreamParser()
    async for chunk in chunks:
        for content in decoder.feed(chunk):
            for event in parser.feed(content):
                yield event
    for content in decoder.close():
        for event in parser.feed(content):
            yield event
    for event in parser.finish():
        yield event
