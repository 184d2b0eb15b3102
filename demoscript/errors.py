import contextvars
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

from demoscript.source import SourceSlice, line_column, render_snippet


_CURRENT_SOURCE: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "demoscript_current_source", default=None
)


def _format_with_context(
    message: str,
    *,
    source: Optional[str] = None,
    slice_: Optional[SourceSlice] = None,
) -> str:
    source = source if source is not None else _CURRENT_SOURCE.get()
    if slice_ is None or source is None:
        return message
    if slice_.begin > len(source):
        return message

    line, column = line_column(source, slice_.begin)
    details = [f"Location: line {line}, column {column}"]
    snippet = render_snippet(source, slice_)
    if snippet:
        details.append(snippet)
    return f"{message}\n" + "\n".join(details)


def format_diagnostic(message: str, *, slice_: Optional[SourceSlice] = None) -> str:
    """Attach best-effort source context to a warning/info diagnostic string."""
    return _format_with_context(message, slice_=slice_)


@contextmanager
def source_context(source: str) -> Iterator[None]:
    token = _CURRENT_SOURCE.set(source)
    try:
        yield
    finally:
        _CURRENT_SOURCE.reset(token)


class ScriptError(Exception):
    """Base error for everything raised by demoscript."""


class SourceError(ScriptError):
    """Error addressed to a slice of the script source."""

    label = "Error"

    def __init__(self, message: str, *, slice_: Optional[SourceSlice] = None):
        self.message = message
        self.slice = slice_
        super().__init__(_format_with_context(message, slice_=slice_))

    def location(self, source: str) -> Optional[Tuple[int, int]]:
        if self.slice is None:
            return None
        return line_column(source, self.slice.begin)

    def render(self, source: str) -> str:
        """Render the error the way the command line reports it."""
        header = f"{self.label}: {self.message}"
        if self.slice is None:
            return header
        return f"{header}\n\n{render_snippet(source, self.slice)}"


class ParseError(SourceError):
    """Raised when a script cannot be read into a syntax tree."""

    label = "Parser Error"


class SemanticError(SourceError):
    """Raised when a syntax tree violates the language rules."""

    label = "Semantic Error"


class ExecutionError(ScriptError):
    """Raised while interpreting a frame. Aborts the frame."""


class BackendError(ExecutionError):
    """Raised by a rendering backend when a call cannot be honoured."""


class ConfigError(ScriptError):
    """Raised when an engine configuration file cannot be used."""
