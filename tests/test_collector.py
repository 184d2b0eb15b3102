import logging
import textwrap

import pytest

from demoscript.compiler import collect_declarations
from demoscript.errors import SemanticError
from demoscript.frontend import parse_script
from demoscript.header import IblDecl, ProgramDecl, TextureDecl
from demoscript.source import SourceSlice
from demoscript.syntax import (
    CallStmt,
    FloatLiteral,
    Function,
    FunctionCall,
    Program,
    RenderTargetDecl,
)
from demoscript.typesys import PixelFormat


def collect(source: str):
    source = textwrap.dedent(source)
    return collect_declarations(parse_script(source), source)


def test_collect_deduplicates_structurally_equal_declarations():
    header = collect(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            uniform_texture_srgb("t", "a.png")
            uniform_texture_srgb("t", "a.png")
            uniform_texture_linear("t", "a.png")
            draw_model("m.obj")
            helper()

        def helper():
            program({"frag": "a.frag", "vert": "a.vert"})
            draw_model("m.obj")
            uniform_ibl("ibl/park")
            uniform_ibl("ibl/park")
        """
    )

    assert header.programs == (ProgramDecl(vert="a.vert", frag="a.frag"),)
    assert header.textures == (TextureDecl("a.png", True), TextureDecl("a.png", False))
    assert header.models == ("m.obj",)
    assert header.ibls == (IblDecl("ibl/park"),)


def test_first_seen_order_defines_handles():
    header = collect(
        """
        def main():
            draw_model("b.obj")
            draw_model("a.obj")
            draw_model("b.obj")
        """
    )
    assert header.models == ("b.obj", "a.obj")
    assert header.model_index("a.obj") == 1


def test_declarations_inside_conditionals_are_collected():
    header = collect(
        """
        def main():
            if time > 1:
                draw_model("then.obj")
            else:
                if time > 2:
                    uniform_texture_linear("t", "nested.png")
        """
    )
    assert header.models == ("then.obj",)
    assert header.textures == (TextureDecl("nested.png", False),)


def test_optional_shader_stages_are_part_of_identity():
    header = collect(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            program({"vert": "a.vert", "frag": "a.frag", "geom": "a.geom"})
        """
    )
    assert len(header.programs) == 2
    assert header.programs[1].geom == "a.geom"


def test_sync_tracks_are_collected_everywhere():
    header = collect(
        """
        rt = RenderTarget(width=width * sync.rt.scale, height=height, buffers={"c": "rgba8"})

        def main():
            bind_rt("rt")
            if sync.verse.intensity > 0:
                uniform_float("u", sync.verse.intensity + f(sync.cam.fov))
            else:
                uniform_float("u", 0)

        def f(x: float) -> float:
            return x * sync.cam.roll
        """
    )
    assert header.sync_tracks == frozenset(
        {"rt:scale", "verse:intensity", "cam:fov", "cam:roll"}
    )


def test_external_resources_exclude_ibl_folders():
    header = collect(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag", "tess_ctrl": "a.tesc"})
            draw_model("m.obj")
            uniform_texture_srgb("t", "a.png")
            uniform_ibl("ibl/park")
        """
    )
    assert header.external_resources == frozenset(
        {"a.vert", "a.frag", "a.tesc", "m.obj", "a.png"}
    )


def test_render_target_definitions_keep_declaration_order():
    header = collect(
        """
        first = RenderTarget(width=1, height=2, buffers={"c": "rgba8", "n": "rgba16f"}, depth=True)
        second = RenderTarget(width=3, height=4)
        """
    )
    assert [target.name for target in header.render_targets] == ["first", "second"]
    assert header.render_targets[0].formats == [PixelFormat.RGBA8, PixelFormat.RGBA16F]
    assert header.render_targets[0].buffer_index("n") == 1
    assert header.render_targets[1].has_depth is False
    assert header.render_target_index("second") == 1


def test_reserved_screen_name_is_rejected():
    with pytest.raises(SemanticError, match="reserved"):
        collect(
            """
            screen = RenderTarget(width=1, height=1, buffers={"c": "rgba8"}, depth=True)
            """
        )


def test_reserved_screen_name_is_rejected_on_handmade_tree():
    program = Program(
        render_targets=[
            RenderTargetDecl(
                name="screen",
                width=FloatLiteral(1.0),
                height=FloatLiteral(1.0),
                buffers=[],
                slice=SourceSlice(0, 6),
            )
        ]
    )
    with pytest.raises(SemanticError, match="reserved") as excinfo:
        collect_declarations(program, "screen")
    assert excinfo.value.slice == SourceSlice(0, 6)


def test_duplicate_render_target_is_rejected_at_duplicate():
    source = textwrap.dedent(
        """
        rt = RenderTarget(width=1, height=1)
        rt = RenderTarget(width=2, height=2)
        """
    )
    with pytest.raises(SemanticError, match="Multiple definitions of `rt` found") as excinfo:
        collect_declarations(parse_script(source), source)
    assert excinfo.value.location(source) == (3, 1)


def test_too_many_buffers_are_rejected():
    with pytest.raises(SemanticError, match="at most 4"):
        collect(
            """
            rt = RenderTarget(
                width=1,
                height=1,
                buffers={"a": "r8", "b": "r8", "c": "r8", "d": "r8", "e": "r8"},
            )
            """
        )


def test_duplicate_function_names_are_rejected():
    program = Program(
        functions=[
            Function(name="main", params=[], body=[]),
            Function(name="main", params=[], body=[]),
        ]
    )
    with pytest.raises(SemanticError, match="Multiple definitions of function `main`"):
        collect_declarations(program, "")


def test_program_payload_must_be_dict():
    with pytest.raises(SemanticError, match="Expected dict"):
        collect(
            """
            def main():
                program("a.vert")
            """
        )


def test_program_payload_requires_vert_and_frag():
    with pytest.raises(SemanticError, match="vert and frag shaders are mandatory!"):
        collect(
            """
            def main():
                program({"vert": "a.vert"})
            """
        )


def test_program_payload_rejects_unknown_stage():
    source = textwrap.dedent(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag", "mesh": "a.mesh"})
        """
    )
    with pytest.raises(SemanticError, match="Unknown shader type: mesh") as excinfo:
        collect_declarations(parse_script(source), source)
    assert excinfo.value.slice.text(source) == '"mesh": "a.mesh"'


def test_program_stage_paths_must_be_strings():
    with pytest.raises(SemanticError, match="Expected string literal"):
        collect(
            """
            def main():
                program({"vert": "a.vert", "frag": 3})
            """
        )


def test_model_path_must_be_string():
    with pytest.raises(SemanticError, match="Expected string literal"):
        collect(
            """
            def main():
                draw_model(model_name)
            """
        )


def test_calls_with_wrong_arity_are_left_to_the_compiler():
    program = Program(
        functions=[
            Function(
                name="main",
                params=[],
                body=[CallStmt(FunctionCall("draw_model", []))],
            )
        ]
    )
    header = collect_declarations(program, "")
    assert header.models == ()


def test_collector_logs_header_counts(caplog):
    with caplog.at_level(logging.DEBUG, logger="demoscript.compiler.collector"):
        collect(
            """
            def main():
                draw_model("m.obj")
            """
        )
    assert "collected models: 1" in caplog.text
