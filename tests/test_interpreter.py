import math
import textwrap

import pytest

from demoscript import bytecode as bc
from demoscript.backend import BackendCall, RecordingBackend
from demoscript.color import LinearRGBA
from demoscript.compiler import compile_program
from demoscript.errors import BackendError, ExecutionError
from demoscript.frontend import parse_script
from demoscript.header import ProgramHeader
from demoscript.camera import MV_UNIFORM, frame_camera
from demoscript.interpreter import MAX_CALL_DEPTH, Interpreter, execute, round_to_int, value_type
from demoscript.scene import load_resources
from demoscript.sync import Interpolation, Key, KeyframeSyncTracker
from demoscript.typesys import BinaryOperator, PixelFormat, ValueType


class FakeSync:
    def __init__(self, values=None):
        self.values = dict(values or {})
        self.required = []

    def require_track(self, name):
        self.required.append(name)

    def update(self):
        pass

    def get_time(self):
        return 0.0

    def get_value(self, track):
        return self.values.get(track)


def build(source: str, **backend_kwargs):
    source = textwrap.dedent(source)
    program = compile_program(parse_script(source), source)
    backend = RecordingBackend(**backend_kwargs)
    load_resources(program, backend)
    backend.reset_calls()
    return program, backend


def run(source: str, sync=None, width=800.0, height=600.0, time=0.0, **backend_kwargs):
    program, backend = build(source, **backend_kwargs)
    result = execute(program, backend, sync or FakeSync(), width, height, time)
    return backend, result


def frame_program(ops, functions=None):
    functions = dict(functions or {})
    functions["main"] = bc.CompiledFunction("main", [], ops)
    return bc.CompiledProgram(header=ProgramHeader(), functions=functions)


def test_round_trip_materializes_targets_before_main():
    backend, _ = run(
        """
        rt1 = RenderTarget(width=64, height=64, buffers={"color": "rgba8"}, depth=True)

        def main():
            bind_rt("rt1")
            clear(LinColor(0, 0, 0, 1))
        """
    )

    assert backend.calls == [
        BackendCall("ensure_render_target", (0, 64, 64, True, (PixelFormat.RGBA8,))),
        BackendCall("bind_render_target", (0,)),
        BackendCall("clear", (LinearRGBA(0, 0, 0, 1),)),
    ]


def test_render_target_sizes_use_frame_globals_and_round():
    backend, _ = run(
        """
        half = RenderTarget(width=width / 2, height=height / 3, buffers={"c": "rgba8"})

        def main():
            bind_rt("half")
        """,
        width=101.0,
        height=100.0,
    )
    assert backend.calls[0] == BackendCall(
        "ensure_render_target", (0, 51, 33, False, (PixelFormat.RGBA8,))
    )


def test_render_target_recreated_only_when_size_changes():
    program, backend = build(
        """
        rt = RenderTarget(width=width, height=64, buffers={"c": "rgba8"})

        def main():
            bind_rt("rt")
        """
    )
    interpreter = Interpreter(program, backend, FakeSync())
    interpreter.execute_frame(100, 100, 0)
    interpreter.execute_frame(100, 100, 1)
    assert backend.target_creations == 1
    interpreter.execute_frame(200, 100, 2)
    assert backend.target_creations == 2


@pytest.mark.parametrize("condition, expected", [("0.5", "then"), ("0", "else"), ("-1", "else")])
def test_conditional_truthiness(condition, expected):
    backend, _ = run(
        f"""
        def main():
            program({{"vert": "a.vert", "frag": "a.frag"}})
            if {condition}:
                uniform_float("then", 1)
            else:
                uniform_float("else", 1)
        """
    )
    names = [call.args[0] for call in backend.calls if call.name == "set_uniform_float"]
    assert names == [expected]


def test_conditional_without_else_is_noop():
    backend, _ = run(
        """
        def main():
            if 0:
                draw_fullscreenquad()
        """
    )
    assert backend.calls == []


def test_arithmetic_and_comparisons_yield_floats():
    backend, _ = run(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            uniform_float("sum", 1 + 2 * 3)
            uniform_float("div", 7 / 2)
            uniform_float("lt", 1 < 2)
            uniform_float("ge", 1 >= 2)
            uniform_float("eq", width == 800)
            uniform_float("ne", width != 800)
        """
    )
    values = {call.args[0]: call.args[1] for call in backend.calls if call.name == "set_uniform_float"}
    assert values == {"sum": 7.0, "div": 3.5, "lt": 1.0, "ge": 0.0, "eq": 1.0, "ne": 0.0}
    assert all(isinstance(value, float) for value in values.values())


def test_binary_operators_reject_non_float_operands():
    with pytest.raises(ExecutionError, match="Cannot convert 'a' to float"):
        run(
            """
            def main():
                if "a" + 1:
                    draw_fullscreenquad()
            """
        )


def test_sync_path_resolves_to_joined_track():
    source = textwrap.dedent(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            uniform_float("u_Intensity", sync.verse.intensity)
        """
    )
    program = compile_program(parse_script(source), source)
    assert program.header.sync_tracks == frozenset({"verse:intensity"})

    backend, _ = run(source, sync=FakeSync({"verse:intensity": 0.75}))
    assert BackendCall("set_uniform_float", ("u_Intensity", 0.75)) in backend.calls


def test_missing_sync_track_is_an_error():
    with pytest.raises(ExecutionError, match='Could not get value for sync track "verse:intensity"'):
        run(
            """
            def main():
                uniform_float("u", sync.verse.intensity)
            """
        )


def test_dotted_path_on_plain_variable_is_an_error():
    program = frame_program(
        [bc.Conditional(bc.VarRef("width", ("x",)), [bc.DrawFullscreenQuad()])]
    )
    with pytest.raises(ExecutionError, match="only supported for sync expressions"):
        execute(program, RecordingBackend(), FakeSync(), 1, 1, 0)


def test_unknown_variable_is_an_error():
    with pytest.raises(ExecutionError, match="Unknown variable missing"):
        run(
            """
            def main():
                if missing:
                    draw_fullscreenquad()
            """
        )


def test_user_function_receives_fresh_locals_and_returns_value():
    backend, _ = run(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            uniform_color("u_Tint", tint(0.25))
            uniform_float("u_Twice", twice(time))

        def tint(amount: float) -> LinColor:
            return LinColor(amount, amount, amount, 1)

        def twice(value: float) -> float:
            return value + value
        """,
        time=1.5,
    )
    assert BackendCall("set_uniform_color", ("u_Tint", LinearRGBA(0.25, 0.25, 0.25, 1.0))) in backend.calls
    assert BackendCall("set_uniform_float", ("u_Twice", 3.0)) in backend.calls


def test_callee_cannot_see_caller_locals():
    with pytest.raises(ExecutionError, match="Unknown variable amount"):
        run(
            """
            def main():
                outer(1)

            def outer(amount: float):
                inner()

            def inner():
                if amount:
                    draw_fullscreenquad()
            """
        )


def test_locals_shadow_globals():
    backend, _ = run(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            show(3)

        def show(width: float):
            uniform_float("w", width)
        """
    )
    assert BackendCall("set_uniform_float", ("w", 3.0)) in backend.calls


def test_argument_type_mismatch_is_an_error():
    with pytest.raises(ExecutionError, match='Expected argument "amount" for call to "f", to have type float'):
        run(
            """
            def main():
                f("oops")

            def f(amount: float):
                pass
            """
        )


def test_argument_count_mismatch_is_an_error():
    with pytest.raises(ExecutionError, match='Expected 1 arguments for call to "f" function. Got 2.'):
        run(
            """
            def main():
                f(1, 2)

            def f(amount: float):
                pass
            """
        )


def test_undefined_function_is_an_error():
    with pytest.raises(ExecutionError, match="Function nowhere is not defined"):
        run(
            """
            def main():
                nowhere()
            """
        )


def test_missing_main_is_an_error():
    with pytest.raises(ExecutionError, match="Function main is not defined"):
        run(
            """
            def other():
                pass
            """
        )


def test_return_bubbles_out_of_conditionals():
    backend, result = run(
        """
        def main():
            if 1:
                if 1:
                    return 5
                draw_model("never.obj")
            draw_fullscreenquad()
        """
    )
    assert result == 5.0
    assert backend.call_names() == []


def test_return_value_of_nested_call_is_used():
    backend, _ = run(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            uniform_float("u", pick(0))

        def pick(flag: float) -> float:
            if flag:
                return 1
            else:
                return 2
            return 3
        """
    )
    assert BackendCall("set_uniform_float", ("u", 2.0)) in backend.calls


def test_lincolor_constructor_checks_arguments():
    with pytest.raises(ExecutionError, match="LinColor expects 4 arguments, got 3"):
        run(
            """
            def main():
                clear(LinColor(time, 0, 0))
            """
        )


def test_dictionary_values_are_not_runtime_values():
    with pytest.raises(ExecutionError, match="Dictionary values are not supported at runtime"):
        run(
            """
            def main():
                uniform_float("u", {"a": 1})
            """
        )


def test_viewport_rounds_and_write_mask_uses_positive_floats():
    backend, _ = run(
        """
        def main():
            viewport(0.4, 0.5, width / 3, height)
            pipeline_set_write_mask(0.1, 0)
        """,
        width=100.0,
        height=50.0,
    )
    assert backend.calls == [
        BackendCall("set_viewport", (0, 1, 33, 50)),
        BackendCall("set_write_mask", (True, False)),
    ]


def test_unknown_uniform_surfaces_as_execution_error():
    with pytest.raises(ExecutionError, match="Trying to set unknown uniform 'u_Missing'"):
        run(
            """
            def main():
                program({"vert": "a.vert", "frag": "a.frag"})
                uniform_float("u_Missing", 1)
            """,
            uniforms={0: ["u_Known"]},
        )


def test_uniform_without_program_is_backend_error():
    with pytest.raises(BackendError, match="Current program is invalid"):
        run(
            """
            def main():
                uniform_float("u", 1)
            """
        )


def test_value_type_mapping():
    assert value_type(None) == ValueType.VOID
    assert value_type(1.0) == ValueType.FLOAT32
    assert value_type(LinearRGBA(0, 0, 0, 1)) == ValueType.LIN_COLOR
    assert value_type("s") == ValueType.STR


def test_round_to_int_rounds_half_away_from_zero():
    assert round_to_int(0.5) == 1
    assert round_to_int(2.5) == 3
    assert round_to_int(-0.5) == -1
    assert round_to_int(1.49) == 1


def test_division_by_zero_follows_float_semantics():
    program = frame_program(
        [
            bc.Return(
                bc.BinaryExpr(BinaryOperator.DIV, bc.ConstFloat(1.0), bc.ConstFloat(0.0))
            )
        ]
    )
    assert execute(program, RecordingBackend(), FakeSync(), 1, 1, 0) == math.inf


def test_keyframe_tracker_drives_sync_values():
    tracker = KeyframeSyncTracker(rows_per_second=10.0, clock=lambda: 0.0, autoplay=False)
    tracker.set_keys("verse:intensity", [Key(0, 0.0, Interpolation.LINEAR), Key(10, 1.0)])
    tracker.seek(0.5)
    backend, _ = run(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            uniform_float("u", sync.verse.intensity)
        """,
        sync=tracker,
    )
    assert BackendCall("set_uniform_float", ("u", 0.5)) in backend.calls


@pytest.mark.parametrize("value", [math.inf, -math.inf, math.nan])
def test_round_to_int_rejects_non_finite_values(value):
    with pytest.raises(ExecutionError, match="Cannot round .* to an integer"):
        round_to_int(value)


@pytest.mark.parametrize("width_expr", ["width / 0", "0 / 0"])
def test_non_finite_viewport_is_an_execution_error(width_expr):
    with pytest.raises(ExecutionError, match="to an integer"):
        run(
            f"""
            def main():
                viewport(0, 0, {width_expr}, height)
            """
        )


def test_non_finite_render_target_size_is_an_execution_error():
    with pytest.raises(ExecutionError, match="Cannot round nan to an integer"):
        run(
            """
            rt = RenderTarget(width=time / time, height=64, buffers={"c": "rgba8"})

            def main():
                bind_rt("rt")
            """,
            time=0.0,
        )


def test_recursive_calls_stop_at_the_call_depth_limit():
    program, backend = build(
        """
        def main():
            spin(1)

        def spin(x: float):
            spin(x)
        """
    )
    interpreter = Interpreter(program, backend, FakeSync())
    with pytest.raises(ExecutionError, match="recursion too deep"):
        interpreter.execute_frame(1, 1, 0)
    assert interpreter._depth == 0


def test_nested_calls_below_the_limit_still_run():
    depth = MAX_CALL_DEPTH - 1
    backend, result = run(
        f"""
        def main():
            return countdown({depth - 1})

        def countdown(n: float) -> float:
            if n > 0:
                return countdown(n - 1)
            return 42
        """
    )
    assert result == 42.0


def test_binding_a_program_uploads_camera_matrices():
    backend, _ = run(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            draw_fullscreenquad()
        """,
        width=800.0,
        height=600.0,
        time=2.0,
    )
    assert backend.call_names() == [
        "bind_program",
        "set_uniform_mat4",
        "set_uniform_mat4",
        "set_uniform_mat4",
        "draw_fullscreen_quad",
    ]
    expected = frame_camera(800.0, 600.0, 2.0).uniforms()
    uploaded = tuple((call.args[0], call.args[1]) for call in backend.calls[1:4])
    assert uploaded == expected


def test_camera_uniforms_missing_from_program_are_skipped():
    backend, _ = run(
        """
        def main():
            program({"vert": "a.vert", "frag": "a.frag"})
            uniform_float("u_Time", time)
        """,
        uniforms={0: [MV_UNIFORM, "u_Time"]},
    )
    assert [call.args[0] for call in backend.calls if call.name == "set_uniform_mat4"] == [
        MV_UNIFORM
    ]
    assert backend.calls[-1] == BackendCall("set_uniform_float", ("u_Time", 0.0))
