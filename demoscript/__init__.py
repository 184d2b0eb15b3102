"""Public Python API for demoscript.

The package exposes the compile pipeline (script reader, declaration collector,
bytecode compiler), the per-frame interpreter and the headless reference
backend and sync tracker used to drive it.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from demoscript.backend import RecordingBackend, RenderBackend
from demoscript.compiler import (
    BytecodeCompiler,
    DeclarationCollector,
    collect_declarations,
    compile_program,
)
from demoscript.errors import (
    BackendError,
    ExecutionError,
    ParseError,
    ScriptError,
    SemanticError,
)
from demoscript.exporter import compile_source, export_program, program_to_dict
from demoscript.frontend import parse_script
from demoscript.interpreter import Interpreter, execute
from demoscript.scene import DemoHost, DemoScene
from demoscript.sync import KeyframeSyncTracker, SyncTracker

try:
    __version__: str = version("demoscript")
except PackageNotFoundError:  # pragma: no cover - editable local fallback
    __version__ = "0.1.0"


def about(*, print_output: bool = True) -> str:
    """Return and optionally print the runtime semantic contract.

    Args:
        print_output: Whether to print the returned summary.

    Returns:
        Human-readable semantic summary string.

    Example:
        >>> from demoscript import about
        >>> text = about(print_output=False)
        >>> "Truthiness" in text
        True
    """
    text = (
        f"demoscript {__version__}\n"
        "Frame globals: width, height (pixels) and time (seconds), all floats.\n"
        "Lookup order: locals, then globals, then sync.<group>.<name> tracks.\n"
        "Truthiness: a condition runs its then-block when strictly greater than 0.\n"
        "Handles: resources are numbered in first-seen declaration order.\n"
        "Render targets: sizes are evaluated and rounded before main runs each frame."
    )
    if print_output:
        print(text)
    return text


__all__ = [
    "__version__",
    "about",
    "BackendError",
    "BytecodeCompiler",
    "DeclarationCollector",
    "DemoHost",
    "DemoScene",
    "ExecutionError",
    "Interpreter",
    "KeyframeSyncTracker",
    "ParseError",
    "RecordingBackend",
    "RenderBackend",
    "ScriptError",
    "SemanticError",
    "SyncTracker",
    "collect_declarations",
    "compile_program",
    "compile_source",
    "execute",
    "export_program",
    "parse_script",
    "program_to_dict",
]
