import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict

from demoscript.errors import ConfigError

DEFAULT_WIDTH = 1024
DEFAULT_HEIGHT = 768
DEFAULT_ROWS_PER_SECOND = 24.0


@dataclass(frozen=True)
class EngineConfig:
    """Settings for driving a demo outside of the script itself."""

    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    rows_per_second: float = DEFAULT_ROWS_PER_SECOND
    frames: int = 1
    frame_rate: float = 60.0
    sync_file: str | None = None

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"Invalid output size {self.width}x{self.height}.")
        if self.rows_per_second <= 0:
            raise ConfigError("rows_per_second must be positive.")
        if self.frames < 1:
            raise ConfigError("frames must be at least 1.")
        if self.frame_rate <= 0:
            raise ConfigError("frame_rate must be positive.")

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def config_from_dict(data: Dict[str, Any]) -> EngineConfig:
    if not isinstance(data, dict):
        raise ConfigError("Engine configuration must be a JSON object.")
    known = {field.name for field in fields(EngineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key in ("width", "height", "frames"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"'{key}' must be an integer.")
        elif key in ("rows_per_second", "frame_rate"):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"'{key}' must be a number.")
            value = float(value)
        elif key == "sync_file" and value is not None and not isinstance(value, str):
            raise ConfigError("'sync_file' must be a path string.")
        values[key] = value
    return EngineConfig(**values)


def load_config(path: Path) -> EngineConfig:
    """Load an :class:`EngineConfig` from a JSON file."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"Failed to read configuration {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in configuration {path}: {exc}") from exc
    return config_from_dict(data)
