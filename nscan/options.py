import numbers
from dataclasses import dataclass

from nscan.errors import InvalidParameterError

MAX_SHIFT = 7 # Shifting 8 bits would zero every channel
MAX_PALETTE_COLORS = 256 # Indexed formats (GIF) cannot hold more


@dataclass(frozen=True)
class ShrinkOptions:
    """
    Tunables for one conversion.

    Attributes:
        sampling_rate (float): Fraction of the pixels drawn (with replacement) to learn the palette from.
        brightness (float): Minimum |ΔV| against the background for a pixel to count as foreground.
        saturation (float): Minimum |ΔS| against the background for a pixel to count as foreground.
        shift (int): Low bits dropped from each channel before the background majority vote.
        foreground_num (int): Total palette size, background included.
        kmeans_iterations (int): Upper bound on k-means update rounds.
    """
    sampling_rate: float = 0.05
    brightness: float = 0.30
    saturation: float = 0.20
    shift: int = 2
    foreground_num: int = 6
    kmeans_iterations: int = 40

    @property
    def num_clusters(self) -> int:
        return self.foreground_num - 1

    def validate(self) -> "ShrinkOptions":
        """
        Checks every tunable and returns self so calls can be chained.

        Raises:
            InvalidParameterError: If any value is out of range.
        """
        for name in ("shift", "foreground_num", "kmeans_iterations"):
            value = getattr(self, name)
            if not isinstance(value, numbers.Integral):
                raise InvalidParameterError(f"{name} must be an integer, got {value!r}")
        if not (0.0 < self.sampling_rate <= 1.0):
            raise InvalidParameterError(f"sampling_rate must be in (0, 1], got {self.sampling_rate}")
        if self.brightness < 0:
            raise InvalidParameterError(f"brightness must be >= 0, got {self.brightness}")
        if self.saturation < 0:
            raise InvalidParameterError(f"saturation must be >= 0, got {self.saturation}")
        if not (0 <= self.shift <= MAX_SHIFT):
            raise InvalidParameterError(f"shift must be between 0 and {MAX_SHIFT}, got {self.shift}")
        if not (2 <= self.foreground_num <= MAX_PALETTE_COLORS):
            raise InvalidParameterError(
                f"foreground_num must be between 2 and {MAX_PALETTE_COLORS}, got {self.foreground_num}"
            )
        if self.kmeans_iterations < 0:
            raise InvalidParameterError(f"kmeans_iterations must be >= 0, got {self.kmeans_iterations}")
        return self

