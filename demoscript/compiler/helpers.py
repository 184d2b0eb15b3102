from typing import Dict, Tuple

from demoscript.bytecode import (
    BinaryExpr,
    CallExpr,
    ConstDict,
    ConstFloat,
    ConstLinColor,
    ConstString,
    ValueExpr,
    VarRef,
)
from demoscript.errors import SemanticError
from demoscript.header import MANDATORY_STAGES, SHADER_STAGES, IblDecl, ProgramDecl, TextureDecl
from demoscript.syntax import (
    BinaryOp,
    ColorLiteral,
    Dictionary,
    Expr,
    FloatLiteral,
    FunctionCall,
    PropertyOf,
    StringLiteral,
    Var,
)


def _expect_string(expr: Expr) -> str:
    if isinstance(expr, StringLiteral):
        return expr.value
    raise SemanticError("Expected string literal", slice_=expr.slice)


def _expect_args_count(call: FunctionCall, count: int) -> None:
    if len(call.args) != count:
        raise SemanticError(
            f"Expected {count} arguments, but got {len(call.args)}.",
            slice_=call.slice,
        )


def _split_target_buffer(expr: Expr) -> Tuple[str, str]:
    name = _expect_string(expr)
    parts = name.split(".")
    if len(parts) != 2:
        raise SemanticError(
            f'The name "{name}" is not valid: use target.buffer',
            slice_=expr.slice,
        )
    return parts[0], parts[1]


def _compile_expr(expr: Expr) -> ValueExpr:
    if isinstance(expr, FloatLiteral):
        return ConstFloat(float(expr.value))
    if isinstance(expr, ColorLiteral):
        return ConstLinColor(expr.color)
    if isinstance(expr, StringLiteral):
        return ConstString(expr.value)
    if isinstance(expr, Var):
        return VarRef(expr.name)
    if isinstance(expr, PropertyOf):
        base = _compile_expr(expr.base)
        if not isinstance(base, VarRef):
            raise SemanticError(
                "The `.` operator can only be used with variable names",
                slice_=expr.slice,
            )
        return VarRef(base.name, base.path + tuple(expr.path))
    if isinstance(expr, Dictionary):
        entries: Dict[str, ValueExpr] = {}
        for entry in expr.entries:
            entries[entry.key] = _compile_expr(entry.value)
        return ConstDict(entries)
    if isinstance(expr, FunctionCall):
        return CallExpr(expr.name, [_compile_expr(arg) for arg in expr.args])
    if isinstance(expr, BinaryOp):
        return BinaryExpr(expr.op, _compile_expr(expr.left), _compile_expr(expr.right))
    raise SemanticError(
        f"Unsupported expression: {type(expr).__name__}",
        slice_=getattr(expr, "slice", None),
    )


def _decode_program_decl(expr: Expr) -> ProgramDecl:
    if not isinstance(expr, Dictionary):
        raise SemanticError("Expected dict", slice_=expr.slice)

    stages: Dict[str, str] = {}
    for entry in expr.entries:
        if entry.key not in SHADER_STAGES:
            raise SemanticError(f"Unknown shader type: {entry.key}", slice_=entry.slice)
        stages[entry.key] = _expect_string(entry.value)

    if any(stage not in stages for stage in MANDATORY_STAGES):
        raise SemanticError("vert and frag shaders are mandatory!", slice_=expr.slice)
    return ProgramDecl(**stages)


def _decode_texture_decl(call: FunctionCall, srgb: bool) -> TextureDecl:
    return TextureDecl(path=_expect_string(call.args[1]), srgb=srgb)


def _decode_ibl_decl(call: FunctionCall) -> IblDecl:
    return IblDecl(folder=_expect_string(call.args[0]))


__all__ = [
    "_expect_string",
    "_expect_args_count",
    "_split_target_buffer",
    "_compile_expr",
    "_decode_program_decl",
    "_decode_texture_decl",
    "_decode_ibl_decl",
]
