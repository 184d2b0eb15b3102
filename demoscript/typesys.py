from enum import Enum
from typing import Optional


class ValueType(Enum):
    FLOAT32 = "float"
    LIN_COLOR = "LinColor"
    STR = "str"
    VOID = "None"


class BinaryOperator(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    EQ = "=="
    NE = "!="

    @property
    def is_comparison(self) -> bool:
        return self not in (
            BinaryOperator.ADD,
            BinaryOperator.SUB,
            BinaryOperator.MUL,
            BinaryOperator.DIV,
        )


class PixelFormat(Enum):
    # sRGB
    SRGB8 = "srgb8"
    SRGBA8 = "srgba8"

    # linear, 8 bit
    R8 = "r8"
    RGB8 = "rgb8"
    RGBA8 = "rgba8"

    # linear, 16 bit
    R16 = "r16"
    R16F = "r16f"
    RGB16 = "rgb16"
    RGB16F = "rgb16f"
    RGBA16 = "rgba16"
    RGBA16F = "rgba16f"

    # linear, 32 bit
    R32F = "r32f"
    RGB32F = "rgb32f"
    RGBA32F = "rgba32f"


class BlendMode(Enum):
    NONE = "none"
    ADD = "add"
    ALPHA_BLEND = "alpha_blend"
    OIT_COVERAGE_BLEND = "oit_coverage_blend"


class ZTestMode(Enum):
    LESS_EQUAL = "less_equal"
    EQUAL = "equal"
    ALWAYS = "always"


class CullingMode(Enum):
    FRONT = "front"
    BACK = "back"
    NONE = "none"


def enum_from_str(enum_cls, value: str) -> Optional[Enum]:
    """Look an enum member up by its script spelling, ``None`` if unknown."""
    for member in enum_cls:
        if member.value == value:
            return member
    return None
