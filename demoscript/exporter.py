import json
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict

from demoscript.bytecode import BytecodeOp, CompiledFunction, CompiledProgram, ValueExpr
from demoscript.compiler import compile_program
from demoscript.frontend import parse_script
from demoscript.header import ProgramHeader


def compile_source(source: str) -> CompiledProgram:
    """Parse and compile script ``source`` into a :class:`CompiledProgram`."""
    return compile_program(parse_script(source), source)


def header_to_dict(header: ProgramHeader) -> Dict[str, Any]:
    return {
        "sync_tracks": sorted(header.sync_tracks),
        "render_targets": [
            {
                "name": target.name,
                "width": _serialize_ir(target.width),
                "height": _serialize_ir(target.height),
                "buffers": [
                    {"name": name, "format": fmt.value} for name, fmt in target.buffers
                ],
                "has_depth": target.has_depth,
            }
            for target in header.render_targets
        ],
        "programs": [
            {"vert": decl.vert, "frag": decl.frag, **decl.optional_stages()}
            for decl in header.programs
        ],
        "models": list(header.models),
        "textures": [{"path": t.path, "srgb": t.srgb} for t in header.textures],
        "ibls": [ibl.folder for ibl in header.ibls],
        "external_resources": sorted(header.external_resources),
    }


def _function_to_dict(function: CompiledFunction) -> Dict[str, Any]:
    return {
        "params": [{"name": name, "type": ptype.value} for name, ptype in function.params],
        "return_type": function.return_type.value if function.return_type is not None else None,
        "body": [_serialize_ir(op) for op in function.body],
    }


def program_to_dict(program: CompiledProgram) -> Dict[str, Any]:
    """Serialize a compiled program into a JSON-compatible mapping."""
    return {
        "header": header_to_dict(program.header),
        "functions": {
            name: _function_to_dict(function)
            for name, function in sorted(program.functions.items())
        },
    }


def export_program(source: str, output_path: str) -> CompiledProgram:
    """Compile ``source`` and write its JSON description to ``output_path``."""
    program = compile_source(source)
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(program_to_dict(program), indent=2, sort_keys=True),
        encoding="utf-8",
    )
    return program


def _serialize_ir(value):
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        data = {f.name: _serialize_ir(getattr(value, f.name)) for f in fields(value)}
        if isinstance(value, BytecodeOp):
            data["op"] = type(value).__name__
        elif isinstance(value, ValueExpr):
            data["expr"] = type(value).__name__
        return data
    if isinstance(value, (list, tuple)):
        return [_serialize_ir(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _serialize_ir(v) for k, v in value.items()}
    return value
