from dataclasses import dataclass


def srgb_to_linear(value: float) -> float:
    if value <= 0.0:
        return 0.0
    if value <= 0.04045:
        return value / 12.92
    if value <= 1.0:
        return ((value + 0.055) / 1.055) ** 2.4
    return 1.0


def linear_to_srgb(value: float) -> float:
    if value <= 0.0:
        return 0.0
    if value < 0.0031308:
        return value * 12.92
    if value <= 1.0:
        return value ** (1.0 / 2.4) * 1.055 - 0.055
    return 1.0


@dataclass(frozen=True)
class LinearRGBA:
    """Linear space color with alpha."""

    r: float
    g: float
    b: float
    a: float

    def to_srgb(self) -> "SrgbRGBA":
        return SrgbRGBA(
            linear_to_srgb(self.r),
            linear_to_srgb(self.g),
            linear_to_srgb(self.b),
            self.a,
        )

    def as_tuple(self) -> tuple:
        return (self.r, self.g, self.b, self.a)


@dataclass(frozen=True)
class SrgbRGBA:
    """sRGB color with alpha. Alpha stays linear."""

    r: float
    g: float
    b: float
    a: float

    @classmethod
    def from_rgba(cls, rgba: int) -> "SrgbRGBA":
        """Decode a packed ``0xRRGGBBAA`` integer."""
        if rgba < 0 or rgba > 0xFFFFFFFF:
            raise ValueError(f"Packed color {rgba:#x} does not fit in 32 bits.")
        return cls(
            ((rgba >> 24) & 0xFF) / 255.0,
            ((rgba >> 16) & 0xFF) / 255.0,
            ((rgba >> 8) & 0xFF) / 255.0,
            (rgba & 0xFF) / 255.0,
        )

    def to_linear(self) -> LinearRGBA:
        return LinearRGBA(
            srgb_to_linear(self.r),
            srgb_to_linear(self.g),
            srgb_to_linear(self.b),
            self.a,
        )
