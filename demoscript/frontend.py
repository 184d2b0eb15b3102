"""Read a Python-syntax render script into a :class:`~demoscript.syntax.Program`.

Only a small subset of Python is accepted. Top level: docstrings,
``name = RenderTarget(...)`` declarations and function definitions. Anything
else raises :class:`ParseError` carrying the offending slice.
"""

import ast
from typing import List, Optional

from demoscript.color import LinearRGBA, SrgbRGBA
from demoscript.errors import ParseError, source_context
from demoscript.source import SourceSlice
from demoscript.syntax import (
    BinaryOp,
    CallStmt,
    ColorLiteral,
    Conditional,
    DictEntry,
    Dictionary,
    Expr,
    FloatLiteral,
    Function,
    FunctionCall,
    Parameter,
    Program,
    PropertyOf,
    RenderTargetDecl,
    Return,
    Stmt,
    StringLiteral,
    Var,
)
from demoscript.typesys import BinaryOperator, PixelFormat, ValueType, enum_from_str

RENDER_TARGET_CONSTRUCTOR = "RenderTarget"
COLOR_LITERAL = "LinColor"
SRGB_LITERAL = "Srgb"

_BIN_OPS = {
    ast.Add: BinaryOperator.ADD,
    ast.Sub: BinaryOperator.SUB,
    ast.Mult: BinaryOperator.MUL,
    ast.Div: BinaryOperator.DIV,
}

_CMP_OPS = {
    ast.Lt: BinaryOperator.LT,
    ast.LtE: BinaryOperator.LE,
    ast.Gt: BinaryOperator.GT,
    ast.GtE: BinaryOperator.GE,
    ast.Eq: BinaryOperator.EQ,
    ast.NotEq: BinaryOperator.NE,
}

_PARAM_TYPES = {
    "float": ValueType.FLOAT32,
    "LinColor": ValueType.LIN_COLOR,
    "str": ValueType.STR,
}


class _LineIndex:
    """Translate ``ast`` positions (1-based line, UTF-8 byte column) to offsets."""

    def __init__(self, source: str):
        self.lines = source.split("\n")
        self.starts: List[int] = []
        offset = 0
        for line in self.lines:
            self.starts.append(offset)
            offset += len(line) + 1
        self.length = len(source)

    def offset(self, lineno: int, byte_col: int) -> int:
        if lineno < 1 or lineno > len(self.lines):
            return self.length
        line = self.lines[lineno - 1]
        column = len(line.encode("utf-8")[:byte_col].decode("utf-8", errors="ignore"))
        return min(self.starts[lineno - 1] + column, self.length)

    def char_offset(self, lineno: int, column: int) -> int:
        if lineno < 1 or lineno > len(self.lines):
            return self.length
        return min(self.starts[lineno - 1] + max(column, 0), self.length)


class ScriptReader:
    def __init__(self, source: str):
        self.source = source
        self._index = _LineIndex(source)

    def read(self) -> Program:
        with source_context(self.source):
            try:
                module = ast.parse(self.source)
            except SyntaxError as exc:
                lineno = exc.lineno or 1
                column = (exc.offset or 1) - 1
                point = self._index.char_offset(lineno, column)
                raise ParseError(exc.msg, slice_=SourceSlice(point, point)) from exc

            program = Program()
            for node in module.body:
                if _is_docstring_expr(node):
                    continue
                if isinstance(node, ast.FunctionDef):
                    program.functions.append(self._read_function(node))
                elif isinstance(node, ast.Assign):
                    program.render_targets.append(self._read_render_target(node))
                else:
                    raise ParseError(
                        f"Unsupported top-level statement: {type(node).__name__}",
                        slice_=self._slice(node),
                    )
            return program

    def _slice(self, node: ast.AST) -> SourceSlice:
        begin = self._index.offset(node.lineno, node.col_offset)
        end_lineno = getattr(node, "end_lineno", None) or node.lineno
        end_col = getattr(node, "end_col_offset", None)
        end = self._index.offset(end_lineno, end_col) if end_col is not None else begin
        return SourceSlice(begin, max(begin, end))

    # ---------------- Declarations ----------------

    def _read_render_target(self, node: ast.Assign) -> RenderTargetDecl:
        if len(node.targets) != 1 or not isinstance(node.targets[0], ast.Name):
            raise ParseError(
                "Render target declarations must assign to a single name",
                slice_=self._slice(node),
            )
        call = node.value
        if not (
            isinstance(call, ast.Call)
            and isinstance(call.func, ast.Name)
            and call.func.id == RENDER_TARGET_CONSTRUCTOR
        ):
            raise ParseError(
                f"Top-level assignments must be {RENDER_TARGET_CONSTRUCTOR}(...) declarations",
                slice_=self._slice(node.value),
            )
        if call.args:
            raise ParseError(
                f"{RENDER_TARGET_CONSTRUCTOR} only accepts keyword arguments",
                slice_=self._slice(call.args[0]),
            )

        fields = {}
        for keyword in call.keywords:
            if keyword.arg not in ("width", "height", "buffers", "depth"):
                raise ParseError(
                    f"Unknown {RENDER_TARGET_CONSTRUCTOR} argument: {keyword.arg}",
                    slice_=self._slice(keyword.value),
                )
            fields[keyword.arg] = keyword.value
        for required in ("width", "height"):
            if required not in fields:
                raise ParseError(
                    f"{RENDER_TARGET_CONSTRUCTOR} requires a `{required}` argument",
                    slice_=self._slice(call),
                )

        has_depth = False
        if "depth" in fields:
            depth = fields["depth"]
            if not (isinstance(depth, ast.Constant) and isinstance(depth.value, bool)):
                raise ParseError("`depth` must be True or False", slice_=self._slice(depth))
            has_depth = depth.value

        return RenderTargetDecl(
            name=node.targets[0].id,
            width=self._read_expr(fields["width"]),
            height=self._read_expr(fields["height"]),
            buffers=self._read_buffers(fields.get("buffers")),
            has_depth=has_depth,
            slice=self._slice(node),
        )

    def _read_buffers(self, node: Optional[ast.AST]):
        if node is None:
            return []
        if not isinstance(node, ast.Dict):
            raise ParseError(
                "`buffers` must map buffer names to pixel formats",
                slice_=self._slice(node),
            )
        buffers = []
        for key, value in zip(node.keys, node.values):
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                raise ParseError(
                    "Buffer names must be string literals",
                    slice_=self._slice(key if key is not None else value),
                )
            if not (isinstance(value, ast.Constant) and isinstance(value.value, str)):
                raise ParseError("Pixel formats must be string literals", slice_=self._slice(value))
            pixel_format = enum_from_str(PixelFormat, value.value)
            if pixel_format is None:
                raise ParseError(f"Unknown pixel format: {value.value}", slice_=self._slice(value))
            buffers.append((key.value, pixel_format))
        return buffers

    def _read_function(self, node: ast.FunctionDef) -> Function:
        if node.decorator_list:
            raise ParseError("Decorators are not supported", slice_=self._slice(node.decorator_list[0]))
        arguments = node.args
        if (
            arguments.vararg
            or arguments.kwarg
            or arguments.kwonlyargs
            or arguments.posonlyargs
            or arguments.defaults
        ):
            raise ParseError(
                f"Function `{node.name}` may only declare plain positional parameters",
                slice_=self._slice(node),
            )

        params = []
        for arg in arguments.args:
            if arg.annotation is None:
                raise ParseError(
                    f"Parameter `{arg.arg}` needs a type annotation",
                    slice_=self._slice(arg),
                )
            params.append(
                Parameter(
                    name=arg.arg,
                    value_type=self._read_type(arg.annotation, allow_none=False),
                    slice=self._slice(arg),
                )
            )

        return_type = None
        if node.returns is not None:
            return_type = self._read_type(node.returns, allow_none=True)

        body = list(node.body)
        if body and _is_docstring_expr(body[0]):
            body = body[1:]

        return Function(
            name=node.name,
            params=params,
            body=self._read_block(body),
            return_type=return_type,
            slice=self._slice(node),
        )

    def _read_type(self, node: ast.AST, *, allow_none: bool) -> ValueType:
        if allow_none and isinstance(node, ast.Constant) and node.value is None:
            return ValueType.VOID
        if isinstance(node, ast.Name):
            if allow_none and node.id == "None":
                return ValueType.VOID
            if node.id in _PARAM_TYPES:
                return _PARAM_TYPES[node.id]
        raise ParseError(
            f"Unsupported type annotation: {ast.unparse(node)}",
            slice_=self._slice(node),
        )

    # ---------------- Statements ----------------

    def _read_block(self, statements: List[ast.stmt]) -> List[Stmt]:
        block: List[Stmt] = []
        for stmt in statements:
            read = self._read_stmt(stmt)
            if read is not None:
                block.append(read)
        return block

    def _read_stmt(self, stmt: ast.stmt) -> Optional[Stmt]:
        if isinstance(stmt, ast.Pass):
            return None
        if isinstance(stmt, ast.Expr):
            if not isinstance(stmt.value, ast.Call):
                raise ParseError(
                    "Only calls can be used as statements",
                    slice_=self._slice(stmt),
                )
            return CallStmt(self._read_call(stmt.value))
        if isinstance(stmt, ast.Return):
            if stmt.value is None:
                raise ParseError("`return` needs a value", slice_=self._slice(stmt))
            return Return(self._read_expr(stmt.value), slice=self._slice(stmt))
        if isinstance(stmt, ast.If):
            # elif chains arrive as a single nested If in orelse.
            else_block = self._read_block(stmt.orelse) if stmt.orelse else None
            return Conditional(
                condition=self._read_expr(stmt.test),
                then_block=self._read_block(stmt.body),
                else_block=else_block,
                slice=self._slice(stmt),
            )
        raise ParseError(
            f"Unsupported statement: {type(stmt).__name__}",
            slice_=self._slice(stmt),
        )

    # ---------------- Expressions ----------------

    def _read_expr(self, node: ast.AST) -> Expr:
        slice_ = self._slice(node)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or node.value is None:
                raise ParseError(f"Unsupported constant: {node.value!r}", slice_=slice_)
            if isinstance(node.value, (int, float)):
                return FloatLiteral(float(node.value), slice=slice_)
            if isinstance(node.value, str):
                return StringLiteral(node.value, slice=slice_)
            raise ParseError(f"Unsupported constant: {node.value!r}", slice_=slice_)

        if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
            number = _number_literal(node)
            if number is None:
                raise ParseError("Unary minus is only supported on numbers", slice_=slice_)
            return FloatLiteral(number, slice=slice_)

        if isinstance(node, ast.Name):
            return Var(node.id, slice=slice_)

        if isinstance(node, ast.Attribute):
            path = []
            base = node
            while isinstance(base, ast.Attribute):
                path.append(base.attr)
                base = base.value
            return PropertyOf(self._read_expr(base), tuple(reversed(path)), slice=slice_)

        if isinstance(node, ast.Dict):
            entries = []
            for key, value in zip(node.keys, node.values):
                if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                    raise ParseError(
                        "Dict literal keys must be constant strings.",
                        slice_=self._slice(key) if key is not None else slice_,
                    )
                entries.append(
                    DictEntry(
                        key.value,
                        self._read_expr(value),
                        slice=self._slice(key).join(self._slice(value)),
                    )
                )
            return Dictionary(entries, slice=slice_)

        if isinstance(node, ast.Call):
            return self._read_call(node)

        if isinstance(node, ast.BinOp):
            op = _BIN_OPS.get(type(node.op))
            if op is None:
                raise ParseError(
                    f"Unsupported binary operator: {type(node.op).__name__}",
                    slice_=slice_,
                )
            return BinaryOp(op, self._read_expr(node.left), self._read_expr(node.right), slice=slice_)

        if isinstance(node, ast.Compare):
            if len(node.ops) != 1:
                raise ParseError("Chained comparisons are not supported", slice_=slice_)
            op = _CMP_OPS.get(type(node.ops[0]))
            if op is None:
                raise ParseError(
                    f"Unsupported comparison: {type(node.ops[0]).__name__}",
                    slice_=slice_,
                )
            return BinaryOp(
                op, self._read_expr(node.left), self._read_expr(node.comparators[0]), slice=slice_
            )

        raise ParseError(f"Unsupported expression: {type(node).__name__}", slice_=slice_)

    def _read_call(self, node: ast.Call):
        slice_ = self._slice(node)
        if not isinstance(node.func, ast.Name):
            raise ParseError("Only calls to plain function names are supported", slice_=slice_)
        if node.keywords:
            raise ParseError(
                f"Keyword arguments are not supported in call to `{node.func.id}`",
                slice_=self._slice(node.keywords[0].value),
            )
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                raise ParseError("Argument unpacking is not supported", slice_=self._slice(arg))

        name = node.func.id
        if name == COLOR_LITERAL:
            numbers = [_number_literal(arg) for arg in node.args]
            if len(numbers) == 4 and all(number is not None for number in numbers):
                return ColorLiteral(LinearRGBA(*numbers), slice=slice_)
        if name == SRGB_LITERAL:
            return ColorLiteral(self._read_srgb(node), slice=slice_)

        return FunctionCall(name, [self._read_expr(arg) for arg in node.args], slice=slice_)

    def _read_srgb(self, node: ast.Call) -> LinearRGBA:
        if len(node.args) != 1:
            raise ParseError(f"{SRGB_LITERAL} expects one 0xRRGGBBAA literal", slice_=self._slice(node))
        arg = node.args[0]
        if not (
            isinstance(arg, ast.Constant)
            and isinstance(arg.value, int)
            and not isinstance(arg.value, bool)
        ):
            raise ParseError(f"{SRGB_LITERAL} expects an integer literal", slice_=self._slice(arg))
        try:
            return SrgbRGBA.from_rgba(arg.value).to_linear()
        except ValueError as exc:
            raise ParseError(str(exc), slice_=self._slice(arg)) from exc


def _number_literal(node: ast.AST) -> Optional[float]:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return float(node.value)
        return None
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        inner = _number_literal(node.operand)
        if inner is None:
            return None
        return -inner if isinstance(node.op, ast.USub) else inner
    return None


def _is_docstring_expr(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


def parse_script(source: str) -> Program:
    """Parse ``source`` into a syntax tree. Raises :class:`ParseError`."""
    return ScriptReader(source).read()
