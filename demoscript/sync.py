"""Timeline/sync provider contract and an in-process keyframe tracker.

Track values are addressed by ``group:name`` paths, the form collected from
``sync.group.name`` expressions. The timeline is measured in rows; one second
covers ``rows_per_second`` rows.
"""

import bisect
import json
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol


class SyncTracker(Protocol):
    def require_track(self, name: str) -> None: ...

    def update(self) -> None: ...

    def get_time(self) -> float: ...

    def get_value(self, track: str) -> Optional[float]: ...


class Interpolation(Enum):
    STEP = "step"
    LINEAR = "linear"
    SMOOTH = "smooth"
    RAMP = "ramp"


@dataclass(frozen=True)
class Key:
    row: int
    value: float
    interpolation: Interpolation = Interpolation.STEP


class Track:
    def __init__(self, name: str, keys: Iterable[Key] = ()):
        self.name = name
        self._keys: List[Key] = []
        for key in keys:
            self.set_key(key)

    @property
    def keys(self) -> List[Key]:
        return list(self._keys)

    def set_key(self, key: Key) -> None:
        rows = [k.row for k in self._keys]
        idx = bisect.bisect_left(rows, key.row)
        if idx < len(self._keys) and self._keys[idx].row == key.row:
            self._keys[idx] = key
        else:
            self._keys.insert(idx, key)

    def delete_key(self, row: int) -> None:
        self._keys = [k for k in self._keys if k.row != row]

    def value_at(self, row: float) -> float:
        if not self._keys:
            return 0.0
        rows = [k.row for k in self._keys]
        idx = bisect.bisect_right(rows, row) - 1
        if idx < 0:
            return self._keys[0].value
        if idx >= len(self._keys) - 1:
            return self._keys[-1].value

        start, end = self._keys[idx], self._keys[idx + 1]
        t = (row - start.row) / (end.row - start.row)
        if start.interpolation == Interpolation.STEP:
            return start.value
        if start.interpolation == Interpolation.SMOOTH:
            t = t * t * (3.0 - 2.0 * t)
        elif start.interpolation == Interpolation.RAMP:
            t = t * t
        return start.value + (end.value - start.value) * t


class KeyframeSyncTracker:
    """Sync provider replaying keyframed tracks on a pausable clock.

    Required tracks without keys read as ``0.0``. Tracks that were never
    required nor given keys read as ``None``.
    """

    def __init__(
        self,
        rows_per_second: float = 24.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        autoplay: bool = True,
    ):
        if rows_per_second <= 0:
            raise ValueError("rows_per_second must be positive.")
        self.rows_per_second = rows_per_second
        self._clock = clock
        self._time = 0.0
        # (timeline time, clock time) at which playback last started.
        self._play_start: Optional[tuple] = None
        self.tracks: Dict[str, Track] = {}
        if autoplay:
            self.play()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], **kwargs) -> "KeyframeSyncTracker":
        """Build a tracker from ``{"tracks": {name: [[row, value, interp], ...]}}``."""
        kwargs.setdefault("rows_per_second", float(data.get("rows_per_second", 24.0)))
        tracker = cls(**kwargs)
        tracks = data.get("tracks", {})
        if not isinstance(tracks, Mapping):
            raise ValueError("'tracks' must be a mapping of track name to key list.")
        for name, raw_keys in tracks.items():
            tracker.set_keys(name, [_key_from_json(name, raw) for raw in raw_keys])
        return tracker

    @classmethod
    def from_file(cls, path: Path, **kwargs) -> "KeyframeSyncTracker":
        with open(path, "r", encoding="utf-8") as handle:
            return cls.from_mapping(json.load(handle), **kwargs)

    @property
    def is_playing(self) -> bool:
        return self._play_start is not None

    @property
    def row(self) -> float:
        return self._time * self.rows_per_second

    def play(self) -> None:
        if self._play_start is None:
            self._play_start = (self._time, self._clock())

    def pause(self) -> None:
        if self._play_start is not None:
            base_time, real_time = self._play_start
            self._time = base_time + (self._clock() - real_time)
            self._play_start = None

    def seek(self, time_s: float) -> None:
        if self._play_start is not None:
            self.pause()
            self._time = time_s
            self.play()
        else:
            self._time = time_s

    def seek_row(self, row: int) -> None:
        self.seek(row / self.rows_per_second)

    def set_keys(self, name: str, keys: Iterable[Key]) -> None:
        self.tracks[name] = Track(name, keys)

    def require_track(self, name: str) -> None:
        self.tracks.setdefault(name, Track(name))

    def update(self) -> None:
        if self._play_start is not None:
            base_time, real_time = self._play_start
            self._time = base_time + (self._clock() - real_time)

    def get_time(self) -> float:
        return self._time

    def get_value(self, track: str) -> Optional[float]:
        found = self.tracks.get(track)
        if found is None:
            return None
        return found.value_at(self.row)


def _key_from_json(track: str, raw: Any) -> Key:
    if not isinstance(raw, (list, tuple)) or len(raw) not in (2, 3):
        raise ValueError(f"Track '{track}' key must be [row, value] or [row, value, interpolation].")
    interpolation = Interpolation(raw[2]) if len(raw) == 3 else Interpolation.STEP
    return Key(row=int(raw[0]), value=float(raw[1]), interpolation=interpolation)
