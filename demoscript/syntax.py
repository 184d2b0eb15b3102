"""Syntax tree of a render script, as produced by a parser."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from demoscript.color import LinearRGBA
from demoscript.source import NO_SLICE, SourceSlice
from demoscript.typesys import BinaryOperator, PixelFormat, ValueType


# Expressions

class Expr:
    slice: SourceSlice


@dataclass(frozen=True)
class Var(Expr):
    name: str
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class FloatLiteral(Expr):
    value: float
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class ColorLiteral(Expr):
    color: LinearRGBA
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class StringLiteral(Expr):
    value: str
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class PropertyOf(Expr):
    base: Expr
    path: Tuple[str, ...]
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class DictEntry:
    key: str
    value: Expr
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class Dictionary(Expr):
    entries: List[DictEntry]
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class FunctionCall(Expr):
    name: str
    args: List[Expr]
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class BinaryOp(Expr):
    op: BinaryOperator
    left: Expr
    right: Expr
    slice: SourceSlice = NO_SLICE


# Statements

class Stmt:
    slice: SourceSlice


@dataclass(frozen=True)
class CallStmt(Stmt):
    call: FunctionCall

    @property
    def slice(self) -> SourceSlice:
        return self.call.slice


@dataclass(frozen=True)
class Return(Stmt):
    value: Expr
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class Conditional(Stmt):
    condition: Expr
    then_block: List[Stmt]
    else_block: Optional[List[Stmt]] = None
    slice: SourceSlice = NO_SLICE


# Declarations

@dataclass(frozen=True)
class RenderTargetDecl:
    name: str
    width: Expr
    height: Expr
    buffers: List[Tuple[str, PixelFormat]]
    has_depth: bool = False
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class Parameter:
    name: str
    value_type: ValueType
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class Function:
    name: str
    params: List[Parameter]
    body: List[Stmt]
    return_type: Optional[ValueType] = None
    slice: SourceSlice = NO_SLICE


@dataclass(frozen=True)
class Program:
    render_targets: List[RenderTargetDecl] = field(default_factory=list)
    functions: List[Function] = field(default_factory=list)
