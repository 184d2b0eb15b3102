"""Rendering backend contract and a headless recording backend.

The interpreter only talks to a :class:`RenderBackend`. Resource handles are
plain integers assigned by the ``load_*`` calls in declaration order.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

from demoscript.color import LinearRGBA
from demoscript.errors import BackendError
from demoscript.typesys import BlendMode, CullingMode, PixelFormat, ZTestMode

# Spelling matches the uniforms declared by existing IBL shaders.
IBL_UNIFORMS = ("u_IblIrrandianceSph", "t_IblRadianceMap")


class RenderBackend(Protocol):
    def ensure_render_target(
        self,
        index: int,
        width: int,
        height: int,
        has_depth: bool,
        formats: Sequence[PixelFormat],
    ) -> None: ...

    def bind_render_target(self, index: Optional[int]) -> None: ...

    def set_viewport(self, x: int, y: int, width: int, height: int) -> None: ...

    def clear(self, color: LinearRGBA) -> None: ...

    def set_blending(self, buffer: int, mode: BlendMode) -> None: ...

    def set_write_mask(self, color: bool, depth: bool) -> None: ...

    def set_ztest(self, mode: ZTestMode) -> None: ...

    def set_culling(self, mode: CullingMode) -> None: ...

    def bind_program(self, index: int) -> None: ...

    def set_uniform_float(self, name: str, value: float) -> None: ...

    def set_uniform_color(self, name: str, value: LinearRGBA) -> None: ...

    def set_uniform_mat4(self, name: str, value: Sequence[float]) -> None: ...

    def bind_texture_uniform(self, name: str, texture_index: int) -> None: ...

    def bind_ibl_uniform(self, ibl_index: int) -> None: ...

    def bind_render_target_texture_uniform(
        self, name: str, target_index: int, buffer_index: int
    ) -> None: ...

    def draw_fullscreen_quad(self) -> None: ...

    def draw_model(self, index: int) -> None: ...

    def load_program(self, vert: str, frag: str, **stages: str) -> int: ...

    def load_model(self, path: str) -> int: ...

    def load_texture(self, path: str, srgb: bool) -> int: ...

    def load_ibl(self, folder: str) -> int: ...


@dataclass(frozen=True)
class BackendCall:
    name: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class RenderTargetState:
    width: int
    height: int
    has_depth: bool
    formats: Tuple[PixelFormat, ...]


class RecordingBackend:
    """Headless backend that validates and records every call.

    Args:
        base_dir: When given, every loaded path must exist below it.
        uniforms: Optional mapping of program index to the uniform names the
            program exposes. Without it every uniform name is accepted.
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        uniforms: Optional[Mapping[int, Iterable[str]]] = None,
    ):
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.uniforms: Optional[Dict[int, Set[str]]] = (
            {idx: set(names) for idx, names in uniforms.items()} if uniforms is not None else None
        )
        self.calls: List[BackendCall] = []

        self.programs: List[Tuple[str, str, Dict[str, str]]] = []
        self.models: List[str] = []
        self.textures: List[Tuple[str, bool]] = []
        self.ibls: List[str] = []

        self.render_targets: Dict[int, RenderTargetState] = {}
        self.target_creations = 0
        self.current_target: Optional[int] = None
        self.current_program: Optional[int] = None
        self.next_free_texture_unit = 0
        self.blended_buffers: Set[int] = set()

    def call_names(self) -> List[str]:
        return [call.name for call in self.calls]

    def reset_calls(self) -> None:
        self.calls = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append(BackendCall(name, tuple(args)))

    # ---------------- Load time ----------------

    def _check_path(self, path: str, kind: str, *, directory: bool = False) -> None:
        if self.base_dir is None:
            return
        full = self.base_dir / path
        exists = full.is_dir() if directory else full.is_file()
        if not exists:
            raise BackendError(f"Could not load {kind} {path!r}")

    def load_program(self, vert: str, frag: str, **stages: str) -> int:
        for path in (vert, frag, *stages.values()):
            self._check_path(path, "shader file")
        self.programs.append((vert, frag, dict(stages)))
        self._record("load_program", vert, frag)
        return len(self.programs) - 1

    def load_model(self, path: str) -> int:
        self._check_path(path, "model")
        self.models.append(path)
        self._record("load_model", path)
        return len(self.models) - 1

    def load_texture(self, path: str, srgb: bool) -> int:
        self._check_path(path, "texture")
        self.textures.append((path, srgb))
        self._record("load_texture", path, srgb)
        return len(self.textures) - 1

    def load_ibl(self, folder: str) -> int:
        self._check_path(folder, "ibl folder", directory=True)
        self.ibls.append(folder)
        self._record("load_ibl", folder)
        return len(self.ibls) - 1

    # ---------------- Frame time ----------------

    def ensure_render_target(
        self,
        index: int,
        width: int,
        height: int,
        has_depth: bool,
        formats: Sequence[PixelFormat],
    ) -> None:
        if width <= 0 or height <= 0:
            raise BackendError(f"Render target {index} has invalid size {width}x{height}")
        formats = tuple(formats)
        self._record("ensure_render_target", index, width, height, has_depth, formats)
        current = self.render_targets.get(index)
        if current is None or current.width != width or current.height != height:
            self.render_targets[index] = RenderTargetState(width, height, has_depth, formats)
            self.target_creations += 1

    def bind_render_target(self, index: Optional[int]) -> None:
        if index is not None and index not in self.render_targets:
            raise BackendError(f"Unknown render target: {index}")
        self.current_target = index
        self._record("bind_render_target", index)

    def set_viewport(self, x: int, y: int, width: int, height: int) -> None:
        self._record("set_viewport", x, y, width, height)

    def clear(self, color: LinearRGBA) -> None:
        self._record("clear", color)

    def set_blending(self, buffer: int, mode: BlendMode) -> None:
        if mode == BlendMode.NONE:
            self.blended_buffers.discard(buffer)
        else:
            self.blended_buffers.add(buffer)
        self._record("set_blending", buffer, mode)

    def set_write_mask(self, color: bool, depth: bool) -> None:
        self._record("set_write_mask", color, depth)

    def set_ztest(self, mode: ZTestMode) -> None:
        self._record("set_ztest", mode)

    def set_culling(self, mode: CullingMode) -> None:
        self._record("set_culling", mode)

    def bind_program(self, index: int) -> None:
        if index < 0 or index >= len(self.programs):
            raise BackendError(f"Unknown program: {index}")
        self.current_program = index
        self.next_free_texture_unit = 0
        self._record("bind_program", index)

    def _check_uniform(self, name: str) -> None:
        if self.current_program is None:
            raise BackendError(f"Current program is invalid (while setting uniform '{name}')")
        if self.uniforms is not None and name not in self.uniforms.get(self.current_program, ()):
            raise BackendError(f"Trying to set unknown uniform '{name}'")

    def _take_texture_unit(self) -> int:
        unit = self.next_free_texture_unit
        self.next_free_texture_unit += 1
        return unit

    def set_uniform_float(self, name: str, value: float) -> None:
        self._check_uniform(name)
        self._record("set_uniform_float", name, value)

    def set_uniform_color(self, name: str, value: LinearRGBA) -> None:
        self._check_uniform(name)
        self._record("set_uniform_color", name, value)

    def set_uniform_mat4(self, name: str, value: Sequence[float]) -> None:
        if len(value) != 16:
            raise BackendError(f"Uniform '{name}' expects 16 matrix components, got {len(value)}")
        self._check_uniform(name)
        self._record("set_uniform_mat4", name, tuple(value))

    def bind_texture_uniform(self, name: str, texture_index: int) -> None:
        self._check_uniform(name)
        if texture_index < 0 or texture_index >= len(self.textures):
            raise BackendError(f"Unknown texture: {texture_index}")
        self._record("bind_texture_uniform", name, texture_index, self._take_texture_unit())

    def bind_ibl_uniform(self, ibl_index: int) -> None:
        for name in IBL_UNIFORMS:
            self._check_uniform(name)
        if ibl_index < 0 or ibl_index >= len(self.ibls):
            raise BackendError(f"Unknown ibl set: {ibl_index}")
        self._record("bind_ibl_uniform", ibl_index, self._take_texture_unit())

    def bind_render_target_texture_uniform(
        self, name: str, target_index: int, buffer_index: int
    ) -> None:
        self._check_uniform(name)
        target = self.render_targets.get(target_index)
        if target is None:
            raise BackendError(f"Unknown render target at index {target_index}")
        if buffer_index < 0 or buffer_index >= len(target.formats):
            raise BackendError(
                f"Render target {target_index} has no buffer at index {buffer_index}"
            )
        self._record(
            "bind_render_target_texture_uniform",
            name,
            target_index,
            buffer_index,
            self._take_texture_unit(),
        )

    def draw_fullscreen_quad(self) -> None:
        self._record("draw_fullscreen_quad")

    def draw_model(self, index: int) -> None:
        if index < 0 or index >= len(self.models):
            raise BackendError(f"Unknown model: {index}")
        self._record("draw_model", index)
