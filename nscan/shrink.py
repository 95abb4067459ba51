from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np
import typer
from PIL import Image
from sklearn.utils import check_random_state

from nscan.clustering import learn_palette
from nscan.errors import EmptyInputError, InvalidParameterError
from nscan.options import ShrinkOptions
from nscan.pixel import Pixel
from nscan.pixels import PixelBuffer

RandomStateLike = Union[None, int, np.random.RandomState]


@dataclass(frozen=True)
class ShrinkResult:
    """
    Everything one conversion produces.

    Attributes:
        image (PIL.Image.Image): The reduced RGB image.
        background (Pixel): The page color; palette index 0.
        foreground (Tuple[Pixel, ...]): Learned foreground centers, palette indices 1..k.
        indices (np.ndarray): Palette index of every pixel, laid out (height, width).
    """
    image: Image.Image
    background: Pixel
    foreground: Tuple[Pixel, ...]
    indices: np.ndarray

    @property
    def palette(self) -> Tuple[Pixel, ...]:
        return (self.background,) + self.foreground

    def palette_rgb(self) -> List[Tuple[int, int, int]]:
        return [p.rgb for p in self.palette]


def sample_size(num_pixels: int, sampling_rate: float) -> int:
    return int(num_pixels * sampling_rate)


def create_sample(buffer: PixelBuffer, num: int, random_state: RandomStateLike = None) -> PixelBuffer:
    """
    Draws `num` pixels uniformly at random, with replacement.

    Args:
        buffer (PixelBuffer): Pixels to draw from.
        num (int): Number of draws.
        random_state: None, an int seed or a numpy RandomState, for reproducible draws.

    Returns:
        PixelBuffer: Exactly `num` pixels, duplicates possible.
    """
    if num < 0:
        raise InvalidParameterError(f"Sample size must be >= 0, got {num}")
    if num > 0 and len(buffer) == 0:
        raise EmptyInputError("Cannot sample from an empty buffer")
    rng = check_random_state(random_state)
    indices = rng.randint(0, len(buffer), size=num) if num else np.empty(0, dtype=np.intp)
    return buffer.take(indices)


def background_color(sample: PixelBuffer, shift: int) -> Pixel:
    """Most common color after dropping the low `shift` bits of each channel."""
    return sample.quantize_all(shift).most_frequent()


def foreground_mask(buffer: PixelBuffer, background: Pixel, brightness: float, saturation: float) -> np.ndarray:
    """
    True for every pixel far enough from the background in value or saturation.
    Hue is deliberately left out of the decision.
    """
    dist = buffer.distance_hsv(background)
    return (dist[:, 2] >= brightness) | (dist[:, 1] >= saturation)


def create_palette(sample: PixelBuffer, options: ShrinkOptions) -> Tuple[Pixel, List[Pixel]]:
    bg = background_color(sample, options.shift)
    mask = foreground_mask(sample, bg, options.brightness, options.saturation)
    target = sample.select(mask)
    if len(target) == 0:
        typer.echo("Warning: No foreground pixels in the sample; foreground colors keep their initial hues.")
    labels = learn_palette(target, options.num_clusters, options.kmeans_iterations)
    return bg, labels


def apply_palette(
    data: PixelBuffer, background: Pixel, labels: List[Pixel], options: ShrinkOptions
) -> Tuple[PixelBuffer, np.ndarray]:
    """
    Maps every pixel to the background or to its nearest foreground center.

    Membership is recomputed here for each pixel; the sample only decided
    which colors exist.

    Returns:
        Tuple[PixelBuffer, np.ndarray]: The reduced pixels and their palette
        indices (0 for background, i + 1 for labels[i]).
    """
    mask = foreground_mask(data, background, options.brightness, options.saturation)
    indices = np.zeros(len(data), dtype=np.intp)
    if mask.any():
        if not labels:
            raise InvalidParameterError("Foreground pixels found but no foreground colors to map them to")
        fg = data.select(mask)
        table = np.stack([fg.distance_rgb(label) for label in labels], axis=1)
        indices[mask] = np.argmin(table, axis=1) + 1

    palette_rgb = np.array([background.rgb] + [label.rgb for label in labels], dtype=np.uint8)
    return PixelBuffer(palette_rgb[indices]), indices


def shrink(
    image: Image.Image,
    options: Optional[ShrinkOptions] = None,
    random_state: RandomStateLike = None,
) -> ShrinkResult:
    """
    Reduces an image to a background color plus `foreground_num - 1` ink colors.

    Args:
        image (PIL.Image.Image): Decoded source image.
        options (ShrinkOptions, optional): Tunables; defaults to ShrinkOptions().
        random_state: Seed or RandomState for the sampler.

    Returns:
        ShrinkResult: The reduced image together with its palette.

    Raises:
        InvalidParameterError: For invalid options.
        EmptyInputError: If the image is too small to yield any sample.
        UnsupportedColorFormatError: If the image mode cannot be read as RGB.
    """
    if options is None:
        options = ShrinkOptions()
    options.validate()

    data = PixelBuffer.from_image(image)

    num = sample_size(len(data), options.sampling_rate)
    samples = create_sample(data, num, random_state)

    bg, labels = create_palette(samples, options)

    shrunk, indices = apply_palette(data, bg, labels, options)

    width, height = image.size
    return ShrinkResult(
        image=shrunk.to_image(width, height),
        background=bg,
        foreground=tuple(labels),
        indices=indices.reshape(width, height).T.copy(),
    )
