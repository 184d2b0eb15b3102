"""Resource declarations and the deduplicated program header.

Every declaration kind is a frozen dataclass: two declarations are the same
resource exactly when they compare equal. The position of a declaration in its
header tuple is the handle the bytecode refers to.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from demoscript.bytecode import ValueExpr
from demoscript.typesys import PixelFormat

SHADER_STAGES = ("vert", "tess_ctrl", "tess_eval", "geom", "frag", "comp")
MANDATORY_STAGES = ("vert", "frag")


@dataclass(frozen=True)
class RenderTargetDef:
    name: str
    width: ValueExpr
    height: ValueExpr
    buffers: Tuple[Tuple[str, PixelFormat], ...]
    has_depth: bool

    @property
    def formats(self) -> List[PixelFormat]:
        return [fmt for _, fmt in self.buffers]

    def buffer_index(self, buffer_name: str) -> Optional[int]:
        for idx, (name, _) in enumerate(self.buffers):
            if name == buffer_name:
                return idx
        return None


@dataclass(frozen=True)
class ProgramDecl:
    vert: str
    frag: str
    tess_ctrl: Optional[str] = None
    tess_eval: Optional[str] = None
    geom: Optional[str] = None
    comp: Optional[str] = None

    def stage_paths(self) -> List[str]:
        paths = []
        for stage in SHADER_STAGES:
            path = getattr(self, stage)
            if path is not None:
                paths.append(path)
        return paths

    def optional_stages(self) -> Dict[str, str]:
        return {
            stage: getattr(self, stage)
            for stage in SHADER_STAGES
            if stage not in MANDATORY_STAGES and getattr(self, stage) is not None
        }


@dataclass(frozen=True)
class TextureDecl:
    path: str
    srgb: bool


@dataclass(frozen=True)
class IblDecl:
    folder: str


def _position(items: Tuple, item) -> Optional[int]:
    for idx, candidate in enumerate(items):
        if candidate == item:
            return idx
    return None


@dataclass(frozen=True)
class ProgramHeader:
    """Resolved declarations of one compiled unit. Never mutated once built."""

    sync_tracks: FrozenSet[str] = frozenset()
    render_targets: Tuple[RenderTargetDef, ...] = ()
    programs: Tuple[ProgramDecl, ...] = ()
    models: Tuple[str, ...] = ()
    textures: Tuple[TextureDecl, ...] = ()
    ibls: Tuple[IblDecl, ...] = ()
    external_resources: FrozenSet[str] = frozenset()

    def render_target_index(self, name: str) -> Optional[int]:
        for idx, target in enumerate(self.render_targets):
            if target.name == name:
                return idx
        return None

    def program_index(self, decl: ProgramDecl) -> Optional[int]:
        return _position(self.programs, decl)

    def model_index(self, path: str) -> Optional[int]:
        return _position(self.models, path)

    def texture_index(self, decl: TextureDecl) -> Optional[int]:
        return _position(self.textures, decl)

    def ibl_index(self, decl: IblDecl) -> Optional[int]:
        return _position(self.ibls, decl)

    def counts(self) -> Dict[str, int]:
        return {
            "sync_tracks": len(self.sync_tracks),
            "render_targets": len(self.render_targets),
            "programs": len(self.programs),
            "models": len(self.models),
            "textures": len(self.textures),
            "ibls": len(self.ibls),
            "external_resources": len(self.external_resources),
        }


def collect_external_resources(
    programs: Tuple[ProgramDecl, ...],
    models: Tuple[str, ...],
    textures: Tuple[TextureDecl, ...],
) -> FrozenSet[str]:
    # IBL folders are loaded with their own multi-file convention and are not
    # part of this set.
    resources = set()
    for program in programs:
        resources.update(program.stage_paths())
    resources.update(models)
    resources.update(texture.path for texture in textures)
    return frozenset(resources)
