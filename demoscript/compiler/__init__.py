"""Public compiler entry points.

Internal compiler constants and helpers are intentionally not re-exported from
this module. Use :func:`compile_program` or the two pass classes.
"""

from demoscript.compiler.collector import DeclarationCollector, collect_declarations
from demoscript.compiler.core import BytecodeCompiler, compile_program

__all__ = [
    "BytecodeCompiler",
    "DeclarationCollector",
    "collect_declarations",
    "compile_program",
]
