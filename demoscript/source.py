"""Source positions and snippet rendering for diagnostics.

A :class:`SourceSlice` only stores offsets. The text it refers to is recovered
from the original source string when a diagnostic is rendered.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class SourceSlice:
    """Half-open ``[begin, end)`` character range into a script source."""

    begin: int
    end: int

    def __post_init__(self):
        if self.begin < 0 or self.end < self.begin:
            raise ValueError(f"Invalid source slice [{self.begin}, {self.end}).")

    def text(self, source: str) -> str:
        return source[self.begin : self.end]

    def join(self, other: "SourceSlice") -> "SourceSlice":
        return SourceSlice(min(self.begin, other.begin), max(self.end, other.end))


NO_SLICE = SourceSlice(0, 0)


def position(source: str, offset: int) -> Optional[Tuple[int, int]]:
    """Map an offset to a zero-based ``(line, column)`` pair."""
    counter = 0
    for line_idx, line in enumerate(source.split("\n")):
        if counter + len(line) + 1 > offset:
            return line_idx, offset - counter
        counter += len(line) + 1
    return None


def line_column(source: str, offset: int) -> Tuple[int, int]:
    """Map an offset to a one-based ``(line, column)`` pair for messages."""
    pos = position(source, offset)
    if pos is None:
        lines = source.split("\n")
        return len(lines), len(lines[-1]) + 1
    return pos[0] + 1, pos[1] + 1


def render_snippet(source: str, slice_: SourceSlice) -> str:
    """Render the source lines covered by ``slice_`` with a caret or underline.

    An empty slice renders the line and a ``^`` below the position. A non-empty
    slice renders every covered line prefixed with its three-digit line number
    and underlines the covered characters with ``~``.
    """
    lo = position(source, slice_.begin)
    hi = position(source, slice_.end)
    if lo is None:
        return ""
    if hi is None:
        hi = position(source, max(len(source) - 1, 0)) or lo

    lines = source.split("\n")
    if lo == hi:
        return f"{lines[lo[0]]}\n{' ' * lo[1]}^"

    rendered = []
    caret = lo[1]
    for line_no in range(lo[0], hi[0] + 1):
        source_line = lines[line_no]
        width = len(source_line) - caret if line_no != hi[0] else hi[1] - caret
        underline = " " * (caret + 5) + "~" * max(width, 0)
        caret = 0
        rendered.append(f"{line_no + 1:03}: {source_line}\n{underline}")
    return "\n".join(rendered)
