from typing import Dict

SCREEN_TARGET = "screen"
SYNC_VARIABLE = "sync"
MAX_RENDER_TARGET_BUFFERS = 4

# Builtin call name -> required argument count.
BUILTIN_ARITY: Dict[str, int] = {
    "program": 1,
    "bind_rt": 1,
    "pipeline_set_blending": 2,
    "pipeline_set_write_mask": 2,
    "pipeline_set_ztest": 1,
    "pipeline_set_culling": 1,
    "uniform_float": 2,
    "uniform_color": 2,
    "uniform_texture_srgb": 2,
    "uniform_texture_linear": 2,
    "uniform_ibl": 1,
    "uniform_rtt": 2,
    "draw_fullscreenquad": 0,
    "draw_model": 1,
    "clear": 1,
    "viewport": 4,
}

TEXTURE_BUILTINS: Dict[str, bool] = {
    "uniform_texture_srgb": True,
    "uniform_texture_linear": False,
}

__all__ = [
    "SCREEN_TARGET",
    "SYNC_VARIABLE",
    "MAX_RENDER_TARGET_BUFFERS",
    "BUILTIN_ARITY",
    "TEXTURE_BUILTINS",
]
