import warnings
from typing import Callable, Dict, List, Set

from demoscript import bytecode as bc
from demoscript.errors import SemanticError, format_diagnostic, source_context
from demoscript.header import ProgramHeader, TextureDecl
from demoscript.syntax import (
    CallStmt,
    Conditional,
    Function,
    FunctionCall,
    Program,
    Return,
    Stmt,
)
from demoscript.typesys import BlendMode, CullingMode, ValueType, ZTestMode, enum_from_str

from .collector import DeclarationCollector
from .constants import BUILTIN_ARITY, SCREEN_TARGET, TEXTURE_BUILTINS
from .helpers import (
    _compile_expr,
    _decode_ibl_decl,
    _decode_program_decl,
    _expect_args_count,
    _expect_string,
    _split_target_buffer,
)


class BytecodeCompiler:
    def __init__(self, program: Program, source: str, header: ProgramHeader):
        """Create a compiler emitting bytecode against a completed header."""
        self.program = program
        self.source = source
        self.header = header
        self._referenced_targets: Set[int] = set()
        # Adding a builtin is one entry here plus its arity in BUILTIN_ARITY.
        self._emitters: Dict[str, Callable[[FunctionCall], bc.BytecodeOp]] = {
            "program": self._emit_program_bind,
            "bind_rt": self._emit_target_bind,
            "pipeline_set_blending": self._emit_pipeline_set_blending,
            "pipeline_set_write_mask": self._emit_pipeline_set_write_mask,
            "pipeline_set_ztest": self._emit_pipeline_set_ztest,
            "pipeline_set_culling": self._emit_pipeline_set_culling,
            "uniform_float": self._emit_uniform_float,
            "uniform_color": self._emit_uniform_color,
            "uniform_texture_srgb": self._emit_uniform_texture,
            "uniform_texture_linear": self._emit_uniform_texture,
            "uniform_ibl": self._emit_uniform_ibl,
            "uniform_rtt": self._emit_uniform_render_target_as_texture,
            "draw_fullscreenquad": self._emit_draw_quad,
            "draw_model": self._emit_draw_model,
            "clear": self._emit_clear,
            "viewport": self._emit_viewport,
        }

    def compile(self) -> bc.CompiledProgram:
        """Compile every function body. Stops at the first semantic error."""
        self._referenced_targets = set()
        with source_context(self.source):
            functions: Dict[str, bc.CompiledFunction] = {}
            for function in self.program.functions:
                functions[function.name] = self._compile_function(function)
            self._warn_unreferenced_targets()
        return bc.CompiledProgram(header=self.header, functions=functions)

    def _compile_function(self, function: Function) -> bc.CompiledFunction:
        params = []
        seen: Set[str] = set()
        for param in function.params:
            if param.value_type == ValueType.VOID:
                raise SemanticError(
                    f"Parameter `{param.name}` cannot have type None",
                    slice_=param.slice,
                )
            if param.name in seen:
                raise SemanticError(
                    f"Duplicate parameter `{param.name}` in function `{function.name}`",
                    slice_=param.slice,
                )
            seen.add(param.name)
            params.append((param.name, param.value_type))

        return bc.CompiledFunction(
            name=function.name,
            params=params,
            body=self._compile_block(function.body),
            return_type=function.return_type,
        )

    # ---------------- Statements ----------------

    def _compile_block(self, block: List[Stmt]) -> bc.Block:
        return [self._compile_stmt(stmt) for stmt in block]

    def _compile_stmt(self, stmt: Stmt) -> bc.BytecodeOp:
        if isinstance(stmt, CallStmt):
            return self._compile_call_stmt(stmt.call)
        if isinstance(stmt, Return):
            return bc.Return(_compile_expr(stmt.value))
        if isinstance(stmt, Conditional):
            condition = _compile_expr(stmt.condition)
            then_block = self._compile_block(stmt.then_block)
            else_block = (
                self._compile_block(stmt.else_block) if stmt.else_block is not None else None
            )
            return bc.Conditional(condition, then_block, else_block)
        raise SemanticError(
            f"Unsupported statement: {type(stmt).__name__}",
            slice_=getattr(stmt, "slice", None),
        )

    def _compile_call_stmt(self, call: FunctionCall) -> bc.BytecodeOp:
        emitter = self._emitters.get(call.name)
        if emitter is None:
            return bc.CallUserFunction(call.name, [_compile_expr(arg) for arg in call.args])
        _expect_args_count(call, BUILTIN_ARITY[call.name])
        return emitter(call)

    # ---------------- Builtins ----------------

    def _resolve_target(self, call: FunctionCall, name: str, what: str) -> int:
        idx = self.header.render_target_index(name)
        if idx is None:
            raise SemanticError(f'{what} unknown render target "{name}"', slice_=call.args[-1].slice)
        self._referenced_targets.add(idx)
        return idx

    def _resolve_target_buffer(self, call: FunctionCall, what: str):
        target_arg = call.args[1]
        target_name, buffer_name = _split_target_buffer(target_arg)
        full_name = _expect_string(target_arg)
        target_idx = self.header.render_target_index(target_name)
        if target_idx is None:
            raise SemanticError(
                f'{what} unknown render target "{full_name}"',
                slice_=target_arg.slice,
            )
        buffer_idx = self.header.render_targets[target_idx].buffer_index(buffer_name)
        if buffer_idx is None:
            raise SemanticError(
                f'{what} unknown buffer "{full_name}"',
                slice_=target_arg.slice,
            )
        self._referenced_targets.add(target_idx)
        return target_idx, buffer_idx

    def _emit_program_bind(self, call: FunctionCall) -> bc.BytecodeOp:
        decl = _decode_program_decl(call.args[0])
        idx = self.header.program_index(decl)
        if idx is None:
            raise SemanticError("Program was not collected in the header", slice_=call.slice)
        return bc.BindProgram(idx)

    def _emit_target_bind(self, call: FunctionCall) -> bc.BytecodeOp:
        name = _expect_string(call.args[0])
        if name == SCREEN_TARGET:
            return bc.BindScreenTarget()
        return bc.BindRenderTarget(self._resolve_target(call, name, "Trying to bind"))

    def _emit_pipeline_set_blending(self, call: FunctionCall) -> bc.BytecodeOp:
        if _expect_string(call.args[1]) == SCREEN_TARGET:
            buffer_idx = 0
        else:
            _, buffer_idx = self._resolve_target_buffer(call, "Trying to set blending for")

        mode_name = _expect_string(call.args[0])
        mode = enum_from_str(BlendMode, mode_name)
        if mode is None:
            raise SemanticError(
                f"Not a valid blend mode: {mode_name}", slice_=call.args[0].slice
            )
        return bc.SetBlending(buffer_idx, mode)

    def _emit_pipeline_set_write_mask(self, call: FunctionCall) -> bc.BytecodeOp:
        return bc.SetWriteMask(_compile_expr(call.args[0]), _compile_expr(call.args[1]))

    def _emit_pipeline_set_ztest(self, call: FunctionCall) -> bc.BytecodeOp:
        mode_name = _expect_string(call.args[0])
        mode = enum_from_str(ZTestMode, mode_name)
        if mode is None:
            raise SemanticError(
                f"Not a valid z-test mode: {mode_name}", slice_=call.args[0].slice
            )
        return bc.SetZTest(mode)

    def _emit_pipeline_set_culling(self, call: FunctionCall) -> bc.BytecodeOp:
        mode_name = _expect_string(call.args[0])
        mode = enum_from_str(CullingMode, mode_name)
        if mode is None:
            raise SemanticError(
                f"Not a valid culling mode: {mode_name}", slice_=call.args[0].slice
            )
        return bc.SetCulling(mode)

    def _emit_uniform_float(self, call: FunctionCall) -> bc.BytecodeOp:
        return bc.UniformFloat(_expect_string(call.args[0]), _compile_expr(call.args[1]))

    def _emit_uniform_color(self, call: FunctionCall) -> bc.BytecodeOp:
        return bc.UniformColor(_expect_string(call.args[0]), _compile_expr(call.args[1]))

    def _emit_uniform_texture(self, call: FunctionCall) -> bc.BytecodeOp:
        decl = TextureDecl(
            path=_expect_string(call.args[1]),
            srgb=TEXTURE_BUILTINS[call.name],
        )
        idx = self.header.texture_index(decl)
        if idx is None:
            raise SemanticError("Texture was not collected in the header", slice_=call.slice)
        return bc.UniformTexture(_expect_string(call.args[0]), idx)

    def _emit_uniform_ibl(self, call: FunctionCall) -> bc.BytecodeOp:
        idx = self.header.ibl_index(_decode_ibl_decl(call))
        if idx is None:
            raise SemanticError("IBL set was not collected in the header", slice_=call.slice)
        return bc.UniformIbl(idx)

    def _emit_uniform_render_target_as_texture(self, call: FunctionCall) -> bc.BytecodeOp:
        uniform_name = _expect_string(call.args[0])
        target_idx, buffer_idx = self._resolve_target_buffer(call, "Trying to bind as texture")
        return bc.UniformRenderTargetAsTexture(uniform_name, target_idx, buffer_idx)

    def _emit_draw_quad(self, call: FunctionCall) -> bc.BytecodeOp:
        return bc.DrawFullscreenQuad()

    def _emit_draw_model(self, call: FunctionCall) -> bc.BytecodeOp:
        idx = self.header.model_index(_expect_string(call.args[0]))
        if idx is None:
            raise SemanticError("Model was not collected in the header", slice_=call.slice)
        return bc.DrawModel(idx)

    def _emit_clear(self, call: FunctionCall) -> bc.BytecodeOp:
        return bc.Clear(_compile_expr(call.args[0]))

    def _emit_viewport(self, call: FunctionCall) -> bc.BytecodeOp:
        x, y, width, height = (_compile_expr(arg) for arg in call.args)
        return bc.Viewport(x, y, width, height)

    def _warn_unreferenced_targets(self) -> None:
        for idx, decl in enumerate(self.program.render_targets):
            if idx in self._referenced_targets:
                continue
            warnings.warn(
                format_diagnostic(
                    f"Render target `{decl.name}` is declared but never used.",
                    slice_=decl.slice,
                ),
                stacklevel=3,
            )


def compile_program(program: Program, source: str) -> bc.CompiledProgram:
    """Collect declarations and compile every function of ``program``."""
    header = DeclarationCollector(program, source).collect()
    return BytecodeCompiler(program, source, header).compile()
