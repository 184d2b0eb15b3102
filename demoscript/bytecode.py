"""Compiled expressions and structured bytecode operations.

Blocks are plain lists of operations. Conditionals hold their branches as
nested blocks rather than jump targets.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

from demoscript.color import LinearRGBA
from demoscript.typesys import BinaryOperator, BlendMode, CullingMode, ValueType, ZTestMode

if TYPE_CHECKING:
    from demoscript.header import ProgramHeader


# Expressions

class ValueExpr:
    pass


@dataclass(frozen=True)
class ConstFloat(ValueExpr):
    value: float


@dataclass(frozen=True)
class ConstLinColor(ValueExpr):
    value: LinearRGBA


@dataclass(frozen=True)
class ConstString(ValueExpr):
    value: str


@dataclass(frozen=True)
class ConstDict(ValueExpr):
    entries: Dict[str, ValueExpr]


@dataclass(frozen=True)
class VarRef(ValueExpr):
    name: str
    path: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CallExpr(ValueExpr):
    name: str
    args: List[ValueExpr]


@dataclass(frozen=True)
class BinaryExpr(ValueExpr):
    op: BinaryOperator
    left: ValueExpr
    right: ValueExpr


# Operations

class BytecodeOp:
    pass


Block = List[BytecodeOp]


@dataclass(frozen=True)
class BindRenderTarget(BytecodeOp):
    index: int


@dataclass(frozen=True)
class BindScreenTarget(BytecodeOp):
    pass


@dataclass(frozen=True)
class BindProgram(BytecodeOp):
    index: int


@dataclass(frozen=True)
class Viewport(BytecodeOp):
    x: ValueExpr
    y: ValueExpr
    width: ValueExpr
    height: ValueExpr


@dataclass(frozen=True)
class Clear(BytecodeOp):
    color: ValueExpr


@dataclass(frozen=True)
class SetBlending(BytecodeOp):
    buffer: int
    mode: BlendMode


@dataclass(frozen=True)
class SetWriteMask(BytecodeOp):
    color: ValueExpr
    depth: ValueExpr


@dataclass(frozen=True)
class SetZTest(BytecodeOp):
    mode: ZTestMode


@dataclass(frozen=True)
class SetCulling(BytecodeOp):
    mode: CullingMode


@dataclass(frozen=True)
class UniformFloat(BytecodeOp):
    name: str
    value: ValueExpr


@dataclass(frozen=True)
class UniformColor(BytecodeOp):
    name: str
    value: ValueExpr


@dataclass(frozen=True)
class UniformTexture(BytecodeOp):
    name: str
    index: int


@dataclass(frozen=True)
class UniformIbl(BytecodeOp):
    index: int


@dataclass(frozen=True)
class UniformRenderTargetAsTexture(BytecodeOp):
    name: str
    target: int
    buffer: int


@dataclass(frozen=True)
class DrawFullscreenQuad(BytecodeOp):
    pass


@dataclass(frozen=True)
class DrawModel(BytecodeOp):
    index: int


@dataclass(frozen=True)
class Return(BytecodeOp):
    value: ValueExpr


@dataclass(frozen=True)
class CallUserFunction(BytecodeOp):
    name: str
    args: List[ValueExpr]


@dataclass(frozen=True)
class Conditional(BytecodeOp):
    condition: ValueExpr
    then_block: Block
    else_block: Optional[Block] = None


# Compiled unit

@dataclass(frozen=True)
class CompiledFunction:
    name: str
    params: List[Tuple[str, ValueType]]
    body: Block
    return_type: Optional[ValueType] = None


@dataclass(frozen=True)
class CompiledProgram:
    header: "ProgramHeader"
    functions: Dict[str, CompiledFunction] = field(default_factory=dict)

    def get_function(self, name: str) -> Optional[CompiledFunction]:
        return self.functions.get(name)

    def get_ops(self, name: str) -> Optional[Block]:
        function = self.functions.get(name)
        return function.body if function is not None else None


Value = Union[None, float, LinearRGBA, str]
