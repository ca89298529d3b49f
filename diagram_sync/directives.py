"""
Directive codec - per-node metadata embedded in diagram comment lines.

A directive is a single comment line of the form::

    %% @node: <textId> <jsonObject>

e.g. ``%% @node: A {"x":100,"y":100,"kind":"diagram"}``. The codec finds,
parses, merges and rewrites these lines. It is pure text-in/text-out and the
only component allowed to rewrite the diagram source.

Line grammar (marker defaults to ``%%``)::

    line      := marker ws? "@" tag ":" ws? text_id ws? body ws?
    tag       := "node" | "edge"
    text_id   := [A-Za-z0-9_.-]+
    body      := "{" any-chars-to-end-of-line

Bodies that are not valid JSON objects are recovered by a loose extractor
that only pulls out numeric ``x`` and ``y``.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "%%"
NODE_TAG = "node"
EDGE_TAG = "edge"

_LOOSE_X = re.compile(r"""["']?\bx["']?\s*:\s*(-?\d+(?:\.\d+)?)""", re.IGNORECASE)
_LOOSE_Y = re.compile(r"""["']?\by["']?\s*:\s*(-?\d+(?:\.\d+)?)""", re.IGNORECASE)


class DirectiveStatus(str, Enum):
    """Outcome of looking up a directive line."""
    FOUND = "found"          # Line present, body is a valid JSON object
    MALFORMED = "malformed"  # Line present, body recovered by the loose parser
    MISSING = "missing"      # No directive for this id


@dataclass
class DirectiveLookup:
    """Tagged result of a directive lookup."""
    status: DirectiveStatus
    text_id: str
    body: dict[str, Any] = field(default_factory=dict)
    raw_body: Optional[str] = None
    start: Optional[int] = None  # Span of the matched line within the text
    end: Optional[int] = None

    @property
    def exists(self) -> bool:
        return self.status != DirectiveStatus.MISSING


@dataclass
class DirectiveLine:
    """A directive line of any id, as yielded by `iter_directives`."""
    tag: str
    text_id: str
    status: DirectiveStatus
    body: dict[str, Any]
    line_number: int


# --- Pure helpers ---

def _number(value: str) -> int | float:
    number = float(value)
    return int(number) if number.is_integer() else number


def parse_loose_position(raw: str) -> dict[str, Any]:
    """Recover numeric `x`/`y` from a hand-edited or broken body. Never raises."""
    result: dict[str, Any] = {}
    x_match = _LOOSE_X.search(raw)
    y_match = _LOOSE_Y.search(raw)
    if x_match:
        result["x"] = _number(x_match.group(1))
    if y_match:
        result["y"] = _number(y_match.group(1))
    return result


def parse_directive_body(raw: Optional[str]) -> tuple[DirectiveStatus, dict[str, Any]]:
    """
    Parse a directive body.

    Returns:
        (FOUND, object) for a valid JSON object, otherwise
        (MALFORMED, loose x/y) - including valid JSON that is not an object
    """
    if raw is None:
        return DirectiveStatus.MISSING, {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return DirectiveStatus.MALFORMED, parse_loose_position(raw)
    if not isinstance(parsed, dict):
        return DirectiveStatus.MALFORMED, parse_loose_position(raw)
    return DirectiveStatus.FOUND, parsed


def merge_patch(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """
    Merge `patch` onto `base` without mutating either.

    Keys whose values are dicts on both sides are merged one level deep, so
    patching ``{"diagram": {"title": "X"}}`` keeps a stored
    ``diagram.mermaidman``. Any other value in `patch` replaces the base value.
    """
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def format_body(body: dict[str, Any]) -> str:
    """Serialize a body as compact single-line JSON."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def format_directive(text_id: str, body: dict[str, Any], marker: str = DEFAULT_MARKER, tag: str = NODE_TAG) -> str:
    """Render a complete directive line (without trailing newline)."""
    return f"{marker} @{tag}: {text_id} {format_body(body)}"


# --- Codec ---

class DirectiveCodec:
    """
    Reads and rewrites `@node` directives for one comment marker.

    All methods are pure: they take the diagram text and return new text.
    """

    def __init__(self, marker: str = DEFAULT_MARKER):
        if not marker:
            raise ValueError("Comment marker cannot be empty")
        self.marker = marker
        self._any_line = re.compile(
            rf"^[ \t]*{re.escape(marker)}[ \t]*@(?P<tag>{NODE_TAG}|{EDGE_TAG}):[ \t]*"
            r"(?P<id>[A-Za-z0-9_.\-]+)[ \t]*(?P<body>\{.*)$"
        )

    def _pattern(self, text_id: str, tag: str = NODE_TAG) -> re.Pattern:
        return re.compile(
            rf"^[ \t]*{re.escape(self.marker)}[ \t]*@{tag}:[ \t]*{re.escape(text_id)}"
            r"[ \t]*(?P<body>\{.*?)[ \t]*$",
            re.MULTILINE,
        )

    def find(self, text: str, text_id: str) -> DirectiveLookup:
        """
        Look up the directive for `text_id`.

        When several lines exist for the same id, the last one wins, matching
        how a parser reads the document top to bottom.
        """
        match = None
        for match in self._pattern(text_id).finditer(text):
            pass
        if match is None:
            return DirectiveLookup(status=DirectiveStatus.MISSING, text_id=text_id)

        raw = match.group("body")
        status, body = parse_directive_body(raw)
        if status == DirectiveStatus.MALFORMED:
            logger.debug("Malformed directive body for %s, recovered %s", text_id, body)
        return DirectiveLookup(
            status=status,
            text_id=text_id,
            body=body,
            raw_body=raw,
            start=match.start(),
            end=match.end(),
        )

    def read(self, text: str, text_id: str) -> dict[str, Any]:
        """Get the parsed directive body for `text_id` ({} when absent)."""
        return self.find(text, text_id).body

    def upsert(self, text: str, text_id: str, patch: dict[str, Any]) -> str:
        """
        Merge `patch` into the directive for `text_id` and return the new text.

        The directive line is rewritten in place when present; otherwise a new
        line is appended after the right-stripped text.
        """
        lookup = self.find(text, text_id)
        merged = merge_patch(lookup.body, patch)
        replacement = format_directive(text_id, merged, self.marker)

        if lookup.exists:
            return text[:lookup.start] + replacement + text[lookup.end:]

        trimmed = text.rstrip()
        suffix = "\n" if trimmed else ""
        return f"{trimmed}{suffix}{replacement}\n"

    def remove(self, text: str, text_id: str) -> str:
        """Drop every directive line for `text_id`."""
        pattern = re.compile(self._pattern(text_id).pattern + r"\n?", re.MULTILINE)
        return pattern.sub("", text)

    def parse_line(self, line: str, line_number: int = 0) -> Optional[DirectiveLine]:
        """Parse a single line as a directive of any id, or None."""
        match = self._any_line.match(line.rstrip())
        if match is None:
            return None
        status, body = parse_directive_body(match.group("body"))
        return DirectiveLine(
            tag=match.group("tag"),
            text_id=match.group("id"),
            status=status,
            body=body,
            line_number=line_number,
        )

    def is_comment(self, line: str) -> bool:
        return line.lstrip().startswith(self.marker)

    def iter_directives(self, text: str) -> Iterator[DirectiveLine]:
        """Yield every node and edge directive in document order."""
        for number, line in enumerate(text.splitlines(), start=1):
            directive = self.parse_line(line, number)
            if directive is not None:
                yield directive


# Module-level convenience for the default `%%` marker
default_codec = DirectiveCodec()


def upsert_node_directive(text: str, text_id: str, patch: dict[str, Any]) -> str:
    """Upsert a `%% @node:` directive (see `DirectiveCodec.upsert`)."""
    return default_codec.upsert(text, text_id, patch)
