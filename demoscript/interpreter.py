"""Tree-walking interpreter executing a compiled program once per frame.

Every runtime failure raises :class:`ExecutionError` and aborts the frame.
Backend side effects are issued in program order.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from demoscript import bytecode as bc
from demoscript.backend import RenderBackend
from demoscript.camera import CameraMatrices, frame_camera
from demoscript.color import LinearRGBA
from demoscript.compiler.constants import SYNC_VARIABLE
from demoscript.errors import BackendError, ExecutionError
from demoscript.sync import SyncTracker
from demoscript.typesys import BinaryOperator, ValueType

ENTRY_POINT = "main"
COLOR_CONSTRUCTOR = "LinColor"
MAX_CALL_DEPTH = 64


def value_type(value: bc.Value) -> ValueType:
    if value is None:
        return ValueType.VOID
    if isinstance(value, LinearRGBA):
        return ValueType.LIN_COLOR
    if isinstance(value, str):
        return ValueType.STR
    if isinstance(value, float):
        return ValueType.FLOAT32
    raise ExecutionError(f"Unsupported runtime value {value!r}")


def as_float(value: bc.Value) -> float:
    if not isinstance(value, float):
        raise ExecutionError(f"Cannot convert {value!r} to float")
    return value


def as_color(value: bc.Value) -> LinearRGBA:
    if not isinstance(value, LinearRGBA):
        raise ExecutionError(f"Cannot convert {value!r} to linear color")
    return value


def round_to_int(value: float) -> int:
    """Round half away from zero."""
    if not math.isfinite(value):
        raise ExecutionError(f"Cannot round {value} to an integer")
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass
class Frame:
    """One call frame: shared read-only globals plus the callee's own locals."""

    globals: Mapping[str, bc.Value]
    locals: Dict[str, bc.Value] = field(default_factory=dict)


@dataclass(frozen=True)
class _Returned:
    value: bc.Value


_COMPARISONS = {
    BinaryOperator.LT: lambda a, b: a < b,
    BinaryOperator.LE: lambda a, b: a <= b,
    BinaryOperator.GT: lambda a, b: a > b,
    BinaryOperator.GE: lambda a, b: a >= b,
    BinaryOperator.EQ: lambda a, b: a == b,
    BinaryOperator.NE: lambda a, b: a != b,
}


class Interpreter:
    def __init__(self, program: bc.CompiledProgram, backend: RenderBackend, sync: SyncTracker):
        self.program = program
        self.backend = backend
        self.sync = sync
        self.camera: Optional[CameraMatrices] = None
        self._depth = 0

    def execute_frame(self, width: float, height: float, time: float) -> bc.Value:
        """Materialize render targets, set up the camera, then run ``main``."""
        frame = Frame(
            globals={"width": float(width), "height": float(height), "time": float(time)}
        )
        for idx, target in enumerate(self.program.header.render_targets):
            target_width = round_to_int(as_float(self.evaluate(target.width, frame)))
            target_height = round_to_int(as_float(self.evaluate(target.height, frame)))
            self.backend.ensure_render_target(
                idx, target_width, target_height, target.has_depth, target.formats
            )
        self.camera = frame_camera(width, height, time)
        return self.call_function(ENTRY_POINT, {}, frame.globals)

    def _upload_camera(self) -> None:
        if self.camera is None:
            return
        for name, matrix in self.camera.uniforms():
            try:
                self.backend.set_uniform_mat4(name, matrix)
            except BackendError:
                # Programs without camera uniforms simply skip them.
                continue

    # ---------------- Functions ----------------

    def call_function(
        self, name: str, args: Dict[str, bc.Value], globals_: Mapping[str, bc.Value]
    ) -> bc.Value:
        ops = self.program.get_ops(name)
        if ops is None:
            raise ExecutionError(f"Function {name} is not defined")
        if self._depth >= MAX_CALL_DEPTH:
            raise ExecutionError(
                f"Call to {name} exceeds {MAX_CALL_DEPTH} nested calls (recursion too deep)"
            )
        self._depth += 1
        try:
            outcome = self.execute_block(ops, Frame(globals=globals_, locals=args))
        finally:
            self._depth -= 1
        return outcome.value if outcome is not None else None

    def _call_user_function(self, name: str, args: List[bc.ValueExpr], frame: Frame) -> bc.Value:
        function = self.program.get_function(name)
        if function is None:
            raise ExecutionError(f"Function {name} is not defined")
        if len(function.params) != len(args):
            raise ExecutionError(
                f'Expected {len(function.params)} arguments for call to "{name}" function. '
                f"Got {len(args)}."
            )

        locals_: Dict[str, bc.Value] = {}
        for (param_name, param_type), arg in zip(function.params, args):
            value = self.evaluate(arg, frame)
            if value_type(value) != param_type:
                raise ExecutionError(
                    f'Expected argument "{param_name}" for call to "{name}", '
                    f"to have type {param_type.value}"
                )
            locals_[param_name] = value
        return self.call_function(name, locals_, frame.globals)

    def _construct_color(self, args: List[bc.ValueExpr], frame: Frame) -> LinearRGBA:
        if len(args) != 4:
            raise ExecutionError(f"{COLOR_CONSTRUCTOR} expects 4 arguments, got {len(args)}")
        r, g, b, a = (as_float(self.evaluate(arg, frame)) for arg in args)
        return LinearRGBA(r, g, b, a)

    # ---------------- Expressions ----------------

    def lookup(self, name: str, path, frame: Frame) -> bc.Value:
        if path:
            if name != SYNC_VARIABLE:
                raise ExecutionError("Right now `.` is only supported for sync expressions")
            track = ":".join(path)
            value = self.sync.get_value(track)
            if value is None:
                raise ExecutionError(f'Could not get value for sync track "{track}"')
            return float(value)
        if name in frame.locals:
            return frame.locals[name]
        if name in frame.globals:
            return frame.globals[name]
        raise ExecutionError(f"Unknown variable {name}")

    def evaluate(self, expr: bc.ValueExpr, frame: Frame) -> bc.Value:
        if isinstance(expr, bc.ConstFloat):
            return float(expr.value)
        if isinstance(expr, bc.ConstLinColor):
            return expr.value
        if isinstance(expr, bc.ConstString):
            return expr.value
        if isinstance(expr, bc.ConstDict):
            raise ExecutionError("Dictionary values are not supported at runtime")
        if isinstance(expr, bc.VarRef):
            return self.lookup(expr.name, expr.path, frame)
        if isinstance(expr, bc.CallExpr):
            if expr.name == COLOR_CONSTRUCTOR:
                return self._construct_color(expr.args, frame)
            return self._call_user_function(expr.name, expr.args, frame)
        if isinstance(expr, bc.BinaryExpr):
            left = as_float(self.evaluate(expr.left, frame))
            right = as_float(self.evaluate(expr.right, frame))
            return _apply_binary(expr.op, left, right)
        raise ExecutionError(f"Unsupported expression {type(expr).__name__}")

    # ---------------- Operations ----------------

    def execute_block(self, block: bc.Block, frame: Frame) -> Optional[_Returned]:
        """Run ``block``. A non-None result means a ``return`` was reached."""
        for op in block:
            outcome = self.execute_op(op, frame)
            if outcome is not None:
                return outcome
        return None

    def execute_op(self, op: bc.BytecodeOp, frame: Frame) -> Optional[_Returned]:
        backend = self.backend
        if isinstance(op, bc.BindRenderTarget):
            backend.bind_render_target(op.index)
        elif isinstance(op, bc.BindScreenTarget):
            backend.bind_render_target(None)
        elif isinstance(op, bc.BindProgram):
            backend.bind_program(op.index)
            self._upload_camera()
        elif isinstance(op, bc.Viewport):
            x, y, width, height = (
                round_to_int(as_float(self.evaluate(expr, frame)))
                for expr in (op.x, op.y, op.width, op.height)
            )
            backend.set_viewport(x, y, width, height)
        elif isinstance(op, bc.Clear):
            backend.clear(as_color(self.evaluate(op.color, frame)))
        elif isinstance(op, bc.SetBlending):
            backend.set_blending(op.buffer, op.mode)
        elif isinstance(op, bc.SetWriteMask):
            write_color = as_float(self.evaluate(op.color, frame)) > 0.0
            write_depth = as_float(self.evaluate(op.depth, frame)) > 0.0
            backend.set_write_mask(write_color, write_depth)
        elif isinstance(op, bc.SetZTest):
            backend.set_ztest(op.mode)
        elif isinstance(op, bc.SetCulling):
            backend.set_culling(op.mode)
        elif isinstance(op, bc.UniformFloat):
            backend.set_uniform_float(op.name, as_float(self.evaluate(op.value, frame)))
        elif isinstance(op, bc.UniformColor):
            backend.set_uniform_color(op.name, as_color(self.evaluate(op.value, frame)))
        elif isinstance(op, bc.UniformTexture):
            backend.bind_texture_uniform(op.name, op.index)
        elif isinstance(op, bc.UniformIbl):
            backend.bind_ibl_uniform(op.index)
        elif isinstance(op, bc.UniformRenderTargetAsTexture):
            backend.bind_render_target_texture_uniform(op.name, op.target, op.buffer)
        elif isinstance(op, bc.DrawFullscreenQuad):
            backend.draw_fullscreen_quad()
        elif isinstance(op, bc.DrawModel):
            backend.draw_model(op.index)
        elif isinstance(op, bc.CallUserFunction):
            self._call_user_function(op.name, op.args, frame)
        elif isinstance(op, bc.Return):
            return _Returned(self.evaluate(op.value, frame))
        elif isinstance(op, bc.Conditional):
            if as_float(self.evaluate(op.condition, frame)) > 0.0:
                return self.execute_block(op.then_block, frame)
            if op.else_block is not None:
                return self.execute_block(op.else_block, frame)
        else:
            raise ExecutionError(f"Unsupported operation {type(op).__name__}")
        return None


def _apply_binary(op: BinaryOperator, left: float, right: float) -> float:
    if op == BinaryOperator.ADD:
        return left + right
    if op == BinaryOperator.SUB:
        return left - right
    if op == BinaryOperator.MUL:
        return left * right
    if op == BinaryOperator.DIV:
        if right == 0.0:
            if left == 0.0 or math.isnan(left):
                return math.nan
            return math.copysign(math.inf, left) * math.copysign(1.0, right)
        return left / right
    return 1.0 if _COMPARISONS[op](left, right) else 0.0


def execute(
    program: bc.CompiledProgram,
    backend: RenderBackend,
    sync: SyncTracker,
    width: float,
    height: float,
    time: float,
) -> bc.Value:
    """Run one frame of ``program``. Convenience wrapper around :class:`Interpreter`."""
    return Interpreter(program, backend, sync).execute_frame(width, height, time)
