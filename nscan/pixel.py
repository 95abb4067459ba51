import math
import numbers
from dataclasses import dataclass, field
from typing import Sequence, Tuple

from nscan.errors import EmptyInputError, InvalidParameterError, UnsupportedColorFormatError
from nscan.options import MAX_SHIFT


def float_to_channel(value: float) -> int:
    """
    Rounds a 0-255 float to the nearest channel value, half up.
    Anything at or above 255 is 255, so rounding can never overflow a channel.
    """
    if value >= 255.0:
        return 255
    return max(0, int(math.floor(value + 0.5)))


def rgb_to_hsv(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """
    Converts 8-bit RGB to HSV, each component in [0, 1].

    Hue comes from whichever channel is maximal and is wrapped into [0, 1).
    Saturation is 0 for black.
    """
    rf = r / 255.0
    gf = g / 255.0
    bf = b / 255.0

    c_max = max(rf, gf, bf)
    c_min = min(rf, gf, bf)
    delta = c_max - c_min

    if delta == 0:
        h = 0.0
    elif c_max == rf:
        h = math.fmod((gf - bf) / delta, 6.0)
    elif c_max == gf:
        h = (bf - rf) / delta + 2.0
    else:
        h = (rf - gf) / delta + 4.0
    h = h / 6.0
    if h < 0:
        h += 1.0

    s = delta / c_max if c_max != 0 else 0.0
    return h, s, c_max


def hsv_to_rgb(h: float, s: float, v: float) -> Tuple[int, int, int]:
    """Six-sector HSV to RGB conversion, channels rounded with float_to_channel."""
    degrees = h * 360.0
    if degrees >= 360.0:
        degrees = 359.0
    sector = degrees / 60.0

    chroma = v * s
    x = chroma * (1.0 - abs(math.fmod(sector, 2.0) - 1.0))

    if sector < 1:
        rf, gf, bf = chroma, x, 0.0
    elif sector < 2:
        rf, gf, bf = x, chroma, 0.0
    elif sector < 3:
        rf, gf, bf = 0.0, chroma, x
    elif sector < 4:
        rf, gf, bf = 0.0, x, chroma
    elif sector < 5:
        rf, gf, bf = x, 0.0, chroma
    else:
        rf, gf, bf = chroma, 0.0, x

    m = v - chroma
    return (
        float_to_channel((rf + m) * 255.0),
        float_to_channel((gf + m) * 255.0),
        float_to_channel((bf + m) * 255.0),
    )


def check_shift(shift: int) -> int:
    if not isinstance(shift, numbers.Integral):
        raise InvalidParameterError(f"Shift must be an integer, got {shift!r}")
    if not (0 <= shift <= MAX_SHIFT):
        raise InvalidParameterError(f"Shift must be between 0 and {MAX_SHIFT}, got {shift}")
    return shift


@dataclass(frozen=True)
class Pixel:
    """
    One color, held as 8-bit RGB with HSV derived from it.

    The HSV fields are computed in __post_init__ and never set directly, so
    the two representations cannot drift apart. Equality and hashing only
    look at RGB.
    """
    r: int
    g: int
    b: int
    h: float = field(init=False, compare=False)
    s: float = field(init=False, compare=False)
    v: float = field(init=False, compare=False)

    def __post_init__(self):
        for name in ("r", "g", "b"):
            value = getattr(self, name)
            if not isinstance(value, numbers.Integral):
                raise InvalidParameterError(f"Channel {name}={value!r} is not an integer")
            if not (0 <= value <= 255):
                raise InvalidParameterError(f"Channel {name}={value} is outside 0-255")
            object.__setattr__(self, name, int(value))
        h, s, v = rgb_to_hsv(self.r, self.g, self.b)
        object.__setattr__(self, "h", h)
        object.__setattr__(self, "s", s)
        object.__setattr__(self, "v", v)

    @classmethod
    def from_hsv(cls, h: float, s: float, v: float) -> "Pixel":
        # The HSV input is not kept; it is re-derived from the rounded RGB
        return cls(*hsv_to_rgb(h, s, v))

    @classmethod
    def from_color(cls, color: Sequence[int]) -> "Pixel":
        """
        Builds a pixel from an (r, g, b) or (r, g, b, a) sequence, ignoring alpha.

        Raises:
            UnsupportedColorFormatError: For anything that is not such a sequence.
        """
        if isinstance(color, (str, bytes)) or not hasattr(color, "__len__") or len(color) not in (3, 4):
            raise UnsupportedColorFormatError(f"Not supported color: [{color!r}]")
        try:
            r, g, b = (int(c) for c in list(color)[:3])
        except (TypeError, ValueError) as e:
            raise UnsupportedColorFormatError(f"Not supported color: [{color!r}]") from e
        return cls(r, g, b)

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return self.r, self.g, self.b

    @property
    def hsv(self) -> Tuple[float, float, float]:
        return self.h, self.s, self.v

    def pack(self) -> int:
        return self.r << 16 | self.g << 8 | self.b

    def distance_hsv(self, other: "Pixel") -> Tuple[float, float, float]:
        """Absolute per-component HSV differences; not combined into one metric."""
        return abs(other.h - self.h), abs(other.s - self.s), abs(other.v - self.v)

    def distance_rgb(self, other: "Pixel") -> int:
        """Squared Euclidean distance in RGB space."""
        dr = other.r - self.r
        dg = other.g - self.g
        db = other.b - self.b
        return dr * dr + dg * dg + db * db

    def quantize(self, shift: int) -> "Pixel":
        """Zeroes the low `shift` bits of each channel."""
        check_shift(shift)
        return Pixel((self.r >> shift) << shift, (self.g >> shift) << shift, (self.b >> shift) << shift)

    # Clustering capability, see nscan.clustering.kmeans_values
    def distance(self, other: "Pixel") -> float:
        return float(self.distance_rgb(other))

    def average(self, pixels: Sequence["Pixel"]) -> "Pixel":
        """RGB mean of `pixels`. Raises EmptyInputError when there are none."""
        if not pixels:
            raise EmptyInputError("Cannot average zero pixels")
        scale = 1.0 / len(pixels)
        return Pixel(
            float_to_channel(sum(p.r for p in pixels) * scale),
            float_to_channel(sum(p.g for p in pixels) * scale),
            float_to_channel(sum(p.b for p in pixels) * scale),
        )

    def __str__(self) -> str:
        return f"R[{self.r}]G[{self.g}]B[{self.b}] = H[{self.h:f}]S[{self.s:f}]V[{self.v:f}]"
