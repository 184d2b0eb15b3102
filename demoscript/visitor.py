"""Read-only traversals of the syntax tree used to gather information."""

from typing import Callable, Iterable, Iterator, List

from demoscript.syntax import (
    BinaryOp,
    CallStmt,
    Conditional,
    Dictionary,
    Expr,
    FunctionCall,
    Program,
    PropertyOf,
    Return,
    Stmt,
    Var,
)


def walk_statements(block: Iterable[Stmt]) -> Iterator[Stmt]:
    """Yield every statement of ``block``, descending into both branches."""
    for stmt in block:
        yield stmt
        if isinstance(stmt, Conditional):
            yield from walk_statements(stmt.then_block)
            if stmt.else_block is not None:
                yield from walk_statements(stmt.else_block)


def iter_call_statements(program: Program) -> Iterator[FunctionCall]:
    for function in program.functions:
        for stmt in walk_statements(function.body):
            if isinstance(stmt, CallStmt):
                yield stmt.call


def sync_track_name(expr: Expr):
    """Return the ``a:b`` track name of a ``sync.a.b`` expression, else ``None``."""
    if isinstance(expr, PropertyOf) and isinstance(expr.base, Var):
        if expr.base.name == "sync":
            return ":".join(expr.path)
    return None


def visit_sync_tracks(program: Program, visit: Callable[[str], None]) -> None:
    for target in program.render_targets:
        _visit_expr(target.width, visit)
        _visit_expr(target.height, visit)
    for function in program.functions:
        _visit_block(function.body, visit)


def _visit_block(block: List[Stmt], visit: Callable[[str], None]) -> None:
    for stmt in block:
        if isinstance(stmt, CallStmt):
            _visit_expr(stmt.call, visit)
        elif isinstance(stmt, Return):
            _visit_expr(stmt.value, visit)
        elif isinstance(stmt, Conditional):
            _visit_expr(stmt.condition, visit)
            _visit_block(stmt.then_block, visit)
            if stmt.else_block is not None:
                _visit_block(stmt.else_block, visit)


def _visit_expr(expr: Expr, visit: Callable[[str], None]) -> None:
    track = sync_track_name(expr)
    if track is not None:
        visit(track)
        return
    if isinstance(expr, PropertyOf):
        _visit_expr(expr.base, visit)
    elif isinstance(expr, FunctionCall):
        for arg in expr.args:
            _visit_expr(arg, visit)
    elif isinstance(expr, BinaryOp):
        _visit_expr(expr.left, visit)
        _visit_expr(expr.right, visit)
    elif isinstance(expr, Dictionary):
        for entry in expr.entries:
            _visit_expr(entry.value, visit)
