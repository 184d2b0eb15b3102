import argparse
import json
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional

from demoscript.backend import BackendCall, RecordingBackend
from demoscript.config import EngineConfig, load_config
from demoscript.errors import ConfigError, ScriptError
from demoscript.exporter import compile_source, program_to_dict
from demoscript.scene import DemoHost, describe_error
from demoscript.sync import KeyframeSyncTracker

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="demoscript",
        description="Compile and run render-pipeline scripts headlessly.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Parse and compile a script.")
    check.add_argument("script", help="Path to the script file.")

    dump = subparsers.add_parser("dump", help="Print the compiled program as JSON.")
    dump.add_argument("script", help="Path to the script file.")
    dump.add_argument(
        "--output",
        default=None,
        help="Write the JSON to this file instead of standard output.",
    )

    trace = subparsers.add_parser(
        "trace",
        help="Run frames against the recording backend and print every backend call.",
    )
    trace.add_argument("script", help="Path to the script file.")
    trace.add_argument("--config", default=None, help="JSON engine configuration file.")
    trace.add_argument("--sync", default=None, help="JSON keyframe file for sync tracks.")
    trace.add_argument("--frames", type=int, default=None, help="Number of frames to run.")
    trace.add_argument("--width", type=int, default=None, help="Output width in pixels.")
    trace.add_argument("--height", type=int, default=None, help="Output height in pixels.")
    trace.add_argument(
        "--frame-rate",
        type=float,
        default=None,
        help="Frames per second used to advance the timeline.",
    )
    trace.add_argument(
        "--check-files",
        action="store_true",
        help="Require every referenced resource to exist next to the script.",
    )
    return parser.parse_args(argv)


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ScriptError(f"Failed to open demo file: {exc}") from exc


def _format_arg(value) -> str:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_arg(item) for item in value) + "]"
    return repr(value)


def format_call(call: BackendCall) -> str:
    return f"{call.name}({', '.join(_format_arg(arg) for arg in call.args)})"


def _run_check(args: argparse.Namespace) -> int:
    path = Path(args.script)
    source = _read_source(path)
    try:
        program = compile_source(source)
    except ScriptError as exc:
        print(describe_error(exc, source), file=sys.stderr)
        return 1
    counts = program.header.counts()
    print(f"OK: {path}")
    print(f"- functions: {len(program.functions)}")
    for kind, count in counts.items():
        print(f"- {kind}: {count}")
    return 0


def _run_dump(args: argparse.Namespace) -> int:
    source = _read_source(Path(args.script))
    try:
        program = compile_source(source)
    except ScriptError as exc:
        print(describe_error(exc, source), file=sys.stderr)
        return 1
    payload = json.dumps(program_to_dict(program), indent=2, sort_keys=True)
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(payload, encoding="utf-8")
        print(f"Wrote {output}")
    else:
        print(payload)
    return 0


def _run_trace(args: argparse.Namespace) -> int:
    config = load_config(Path(args.config)) if args.config else EngineConfig()
    config = config.with_overrides(
        width=args.width,
        height=args.height,
        frames=args.frames,
        frame_rate=args.frame_rate,
        sync_file=args.sync,
    )

    if config.sync_file:
        try:
            sync = KeyframeSyncTracker.from_file(
                Path(config.sync_file), rows_per_second=config.rows_per_second, autoplay=False
            )
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Failed to load sync file {config.sync_file}: {exc}") from exc
    else:
        sync = KeyframeSyncTracker(config.rows_per_second, autoplay=False)

    def backend_factory(base_dir):
        return RecordingBackend(base_dir=base_dir if args.check_files else None)

    host = DemoHost(Path(args.script), sync, config=config, backend_factory=backend_factory)
    if not host.reload():
        print(host.last_error, file=sys.stderr)
        return 1

    backend = host.scene.backend
    for frame in range(config.frames):
        sync.seek(frame / config.frame_rate)
        backend.reset_calls()
        ok = host.render_frame()
        print(f"# frame {frame} (time={sync.get_time():.3f})")
        for call in backend.calls:
            print(format_call(call))
        if not ok:
            print(f"Error while rendering scene: \n{host.last_error}", file=sys.stderr)
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    handlers = {"check": _run_check, "dump": _run_dump, "trace": _run_trace}
    try:
        return handlers[args.command](args)
    except ScriptError as exc:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
