"""Loading a script into a runnable scene, and the host that drives it.

A scene is one compiled unit plus the backend holding its resources. The host
swaps whole scenes on reload so that a failed reload never disturbs the scene
currently on screen.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from demoscript.backend import RecordingBackend, RenderBackend
from demoscript.bytecode import CompiledProgram, Value
from demoscript.compiler import compile_program
from demoscript.config import EngineConfig
from demoscript.errors import BackendError, ExecutionError, ScriptError, SourceError
from demoscript.frontend import parse_script
from demoscript.interpreter import Interpreter
from demoscript.sync import SyncTracker

logger = logging.getLogger(__name__)

BackendFactory = Callable[[Optional[Path]], RenderBackend]


def _check_handle(kind: str, name: str, got: int, expected: int) -> None:
    if got != expected:
        raise BackendError(
            f"Backend assigned index {got} to {kind} {name!r}, expected {expected}"
        )


def load_resources(program: CompiledProgram, backend: RenderBackend) -> None:
    """Load every declared resource so that backend indices match header handles."""
    header = program.header
    for idx, decl in enumerate(header.programs):
        got = backend.load_program(decl.vert, decl.frag, **decl.optional_stages())
        _check_handle("program", decl.vert, got, idx)
    for idx, model in enumerate(header.models):
        _check_handle("model", model, backend.load_model(model), idx)
    for idx, texture in enumerate(header.textures):
        _check_handle("texture", texture.path, backend.load_texture(texture.path, texture.srgb), idx)
    for idx, ibl in enumerate(header.ibls):
        _check_handle("ibl folder", ibl.folder, backend.load_ibl(ibl.folder), idx)


class DemoScene:
    def __init__(self, source: str, program: CompiledProgram, backend: RenderBackend):
        self.source = source
        self.program = program
        self.backend = backend

    @classmethod
    def from_source(cls, source: str, backend: RenderBackend) -> "DemoScene":
        """Parse, compile and load ``source``. Raises any :class:`ScriptError`."""
        program = compile_program(parse_script(source), source)
        load_resources(program, backend)
        return cls(source, program, backend)

    @classmethod
    def from_file(cls, path: Path, backend_factory: Optional[BackendFactory] = None) -> "DemoScene":
        path = Path(path)
        logger.info("Opening demo: %s", path)
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ScriptError(f"Failed to open demo file: {exc}") from exc
        factory = backend_factory or default_backend_factory
        return cls.from_source(source, factory(path.parent))

    def require_tracks(self, sync: SyncTracker) -> None:
        for track in sorted(self.program.header.sync_tracks):
            sync.require_track(track)

    def draw(self, width: float, height: float, time: float, sync: SyncTracker) -> Value:
        return Interpreter(self.program, self.backend, sync).execute_frame(width, height, time)


def default_backend_factory(base_dir: Optional[Path]) -> RenderBackend:
    return RecordingBackend(base_dir=base_dir)


def describe_error(exc: ScriptError, source: Optional[str]) -> str:
    if isinstance(exc, SourceError) and exc.slice is not None and source is not None:
        return exc.render(source)
    return str(exc)


class DemoHost:
    """Keeps one active scene, reloads it from disk and renders frames."""

    def __init__(
        self,
        path: Path,
        sync: SyncTracker,
        *,
        config: Optional[EngineConfig] = None,
        backend_factory: Optional[BackendFactory] = None,
    ):
        self.path = Path(path)
        self.sync = sync
        self.config = config or EngineConfig()
        self.backend_factory = backend_factory or default_backend_factory
        self.scene: Optional[DemoScene] = None
        self.last_error: Optional[str] = None

    def reload(self) -> bool:
        """Build a brand-new scene; swap it in only if every step succeeded."""
        if self.scene is not None:
            logger.info("Reloading...")
        try:
            source = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            self.last_error = f"Failed to open demo file: {exc}"
            logger.error("Error while loading demo:\n%s", self.last_error)
            return False

        try:
            scene = DemoScene.from_source(source, self.backend_factory(self.path.parent))
        except ScriptError as exc:
            self.last_error = describe_error(exc, source)
            logger.error("Error while loading demo:\n%s", self.last_error)
            return False

        scene.require_tracks(self.sync)
        self.scene = scene
        self.last_error = None
        logger.info(
            "Loaded demo %s (%d functions, %d render targets)",
            self.path,
            len(scene.program.functions),
            len(scene.program.header.render_targets),
        )
        return True

    def render_frame(self, width: Optional[float] = None, height: Optional[float] = None) -> bool:
        """Render one frame. A runtime error is logged and reported as ``False``."""
        if self.scene is None:
            return False
        self.sync.update()
        width = float(width if width is not None else self.config.width)
        height = float(height if height is not None else self.config.height)
        try:
            self.scene.draw(width, height, self.sync.get_time(), self.sync)
        except ExecutionError as exc:
            self.last_error = str(exc)
            logger.error("Error while rendering scene: \n%s", exc)
            return False
        return True
