import json

import pytest

from demoscript.sync import Interpolation, Key, KeyframeSyncTracker, Track


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_track_without_keys_reads_zero():
    assert Track("a:b").value_at(12.0) == 0.0


def test_track_holds_first_and_last_values_outside_keys():
    track = Track("t", [Key(10, 2.0, Interpolation.LINEAR), Key(20, 4.0)])
    assert track.value_at(0.0) == 2.0
    assert track.value_at(30.0) == 4.0


@pytest.mark.parametrize(
    "interpolation, expected",
    [
        (Interpolation.STEP, 0.0),
        (Interpolation.LINEAR, 0.25),
        (Interpolation.SMOOTH, 0.15625),
        (Interpolation.RAMP, 0.0625),
    ],
)
def test_interpolation_modes(interpolation, expected):
    track = Track("t", [Key(0, 0.0, interpolation), Key(4, 1.0)])
    assert track.value_at(1.0) == pytest.approx(expected)


def test_set_key_replaces_existing_row_and_keeps_order():
    track = Track("t")
    track.set_key(Key(5, 1.0))
    track.set_key(Key(1, 3.0))
    track.set_key(Key(5, 2.0))
    assert [(key.row, key.value) for key in track.keys] == [(1, 3.0), (5, 2.0)]
    track.delete_key(1)
    assert [key.row for key in track.keys] == [5]


def test_required_and_unknown_tracks():
    tracker = KeyframeSyncTracker(autoplay=False)
    tracker.require_track("verse:intensity")
    assert tracker.get_value("verse:intensity") == 0.0
    assert tracker.get_value("nope") is None


def test_require_track_keeps_existing_keys():
    tracker = KeyframeSyncTracker(autoplay=False)
    tracker.set_keys("a", [Key(0, 7.0)])
    tracker.require_track("a")
    assert tracker.get_value("a") == 7.0


def test_play_pause_and_seek_follow_the_clock():
    clock = FakeClock()
    tracker = KeyframeSyncTracker(rows_per_second=24.0, clock=clock)
    assert tracker.is_playing

    clock.now += 2.0
    tracker.update()
    assert tracker.get_time() == pytest.approx(2.0)
    assert tracker.row == pytest.approx(48.0)

    tracker.pause()
    clock.now += 5.0
    tracker.update()
    assert tracker.get_time() == pytest.approx(2.0)

    tracker.seek(10.0)
    assert tracker.get_time() == 10.0
    tracker.play()
    clock.now += 1.0
    tracker.update()
    assert tracker.get_time() == pytest.approx(11.0)

    tracker.seek(3.0)
    clock.now += 0.5
    tracker.update()
    assert tracker.get_time() == pytest.approx(3.5)


def test_seek_row_uses_rows_per_second():
    tracker = KeyframeSyncTracker(rows_per_second=10.0, autoplay=False)
    tracker.seek_row(25)
    assert tracker.get_time() == pytest.approx(2.5)


def test_values_follow_timeline():
    tracker = KeyframeSyncTracker(rows_per_second=10.0, autoplay=False)
    tracker.set_keys("cam:fov", [Key(0, 10.0, Interpolation.LINEAR), Key(10, 20.0)])
    tracker.seek(0.5)
    assert tracker.get_value("cam:fov") == pytest.approx(15.0)


def test_from_mapping_and_file(tmp_path):
    payload = {
        "rows_per_second": 12,
        "tracks": {
            "verse:intensity": [[0, 0.0, "linear"], [12, 1.0]],
            "cam:roll": [[0, 3.0]],
        },
    }
    path = tmp_path / "sync.json"
    path.write_text(json.dumps(payload), encoding="utf-8")

    tracker = KeyframeSyncTracker.from_file(path, autoplay=False)
    assert tracker.rows_per_second == 12.0
    tracker.seek(0.5)
    assert tracker.get_value("verse:intensity") == pytest.approx(0.5)
    assert tracker.get_value("cam:roll") == 3.0
    assert tracker.tracks["cam:roll"].keys[0].interpolation == Interpolation.STEP


def test_from_mapping_rejects_malformed_keys():
    with pytest.raises(ValueError, match="must be \\[row, value\\]"):
        KeyframeSyncTracker.from_mapping({"tracks": {"a": [[1]]}}, autoplay=False)


def test_from_mapping_rejects_unknown_interpolation():
    with pytest.raises(ValueError):
        KeyframeSyncTracker.from_mapping({"tracks": {"a": [[1, 2.0, "cubic"]]}}, autoplay=False)


def test_rows_per_second_must_be_positive():
    with pytest.raises(ValueError, match="rows_per_second must be positive"):
        KeyframeSyncTracker(rows_per_second=0)
