import logging
from typing import Callable, Iterator, List, Set, TypeVar

from demoscript.errors import SemanticError, source_context
from demoscript.header import (
    ProgramDecl,
    ProgramHeader,
    RenderTargetDef,
    TextureDecl,
    collect_external_resources,
)
from demoscript.syntax import FunctionCall, Program
from demoscript.visitor import iter_call_statements, visit_sync_tracks

from .constants import BUILTIN_ARITY, MAX_RENDER_TARGET_BUFFERS, SCREEN_TARGET, TEXTURE_BUILTINS
from .helpers import (
    _compile_expr,
    _decode_ibl_decl,
    _decode_program_decl,
    _decode_texture_decl,
    _expect_string,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeclarationCollector:
    """Scan a syntax tree once and build its deduplicated :class:`ProgramHeader`."""

    def __init__(self, program: Program, source: str):
        self.program = program
        self.source = source

    def collect(self) -> ProgramHeader:
        with source_context(self.source):
            self._check_function_names()
            sync_tracks = self._collect_sync_tracks()
            targets = self._collect_target_defs()
            programs = self._collect_unique("program", _decode_program_decl_from_call)
            models = self._collect_unique("draw_model", lambda call: _expect_string(call.args[0]))
            textures = self._collect_textures()
            ibls = self._collect_unique("uniform_ibl", _decode_ibl_decl)

        header = ProgramHeader(
            sync_tracks=frozenset(sync_tracks),
            render_targets=tuple(targets),
            programs=tuple(programs),
            models=tuple(models),
            textures=tuple(textures),
            ibls=tuple(ibls),
            external_resources=collect_external_resources(
                tuple(programs), tuple(models), tuple(textures)
            ),
        )
        for kind, count in header.counts().items():
            logger.debug("collected %s: %d", kind, count)
        return header

    def _check_function_names(self) -> None:
        seen: Set[str] = set()
        for function in self.program.functions:
            if function.name in seen:
                raise SemanticError(
                    f"Multiple definitions of function `{function.name}` found",
                    slice_=function.slice,
                )
            seen.add(function.name)

    def _collect_sync_tracks(self) -> Set[str]:
        tracks: Set[str] = set()
        visit_sync_tracks(self.program, tracks.add)
        return tracks

    def _collect_target_defs(self) -> List[RenderTargetDef]:
        result: List[RenderTargetDef] = []
        for decl in self.program.render_targets:
            if decl.name == SCREEN_TARGET:
                raise SemanticError(
                    "The render target name `screen` is reserved for the window's buffer",
                    slice_=decl.slice,
                )
            if any(target.name == decl.name for target in result):
                raise SemanticError(
                    f"Multiple definitions of `{decl.name}` found",
                    slice_=decl.slice,
                )
            if len(decl.buffers) > MAX_RENDER_TARGET_BUFFERS:
                raise SemanticError(
                    f"Render target `{decl.name}` declares {len(decl.buffers)} buffers, "
                    f"at most {MAX_RENDER_TARGET_BUFFERS} are supported",
                    slice_=decl.slice,
                )
            buffer_names = [name for name, _ in decl.buffers]
            for name in buffer_names:
                if buffer_names.count(name) > 1:
                    raise SemanticError(
                        f"Render target `{decl.name}` declares buffer `{name}` twice",
                        slice_=decl.slice,
                    )

            result.append(
                RenderTargetDef(
                    name=decl.name,
                    width=_compile_expr(decl.width),
                    height=_compile_expr(decl.height),
                    buffers=tuple(decl.buffers),
                    has_depth=decl.has_depth,
                )
            )
        return result

    def _calls_named(self, *names: str) -> Iterator[FunctionCall]:
        for call in iter_call_statements(self.program):
            if call.name in names and len(call.args) == BUILTIN_ARITY[call.name]:
                yield call

    def _collect_unique(self, name: str, decode: Callable[[FunctionCall], T]) -> List[T]:
        result: List[T] = []
        for call in self._calls_named(name):
            decl = decode(call)
            if decl not in result:
                result.append(decl)
        return result

    def _collect_textures(self) -> List[TextureDecl]:
        result: List[TextureDecl] = []
        for call in self._calls_named(*TEXTURE_BUILTINS):
            decl = _decode_texture_decl(call, TEXTURE_BUILTINS[call.name])
            if decl not in result:
                result.append(decl)
        return result


def _decode_program_decl_from_call(call: FunctionCall) -> ProgramDecl:
    return _decode_program_decl(call.args[0])


def collect_declarations(program: Program, source: str) -> ProgramHeader:
    return DeclarationCollector(program, source).collect()


__all__ = ["DeclarationCollector", "collect_declarations"]
