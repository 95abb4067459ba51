from typing import Iterable, Iterator, Optional

import numpy as np
from PIL import Image

from nscan.errors import EmptyInputError, InvalidParameterError, UnsupportedColorFormatError
from nscan.pixel import Pixel, check_shift, float_to_channel

# Pillow modes that convert losslessly enough to RGB for scanning purposes
SUPPORTED_MODES = frozenset({"1", "L", "LA", "P", "PA", "RGB", "RGBA", "RGBX", "CMYK", "YCbCr"})


def rgb_to_hsv_array(rgb: np.ndarray) -> np.ndarray:
    """
    Vectorised twin of nscan.pixel.rgb_to_hsv.

    Args:
        rgb (np.ndarray): Nx3 uint8 array.

    Returns:
        np.ndarray: Nx3 float64 array of (h, s, v), bit-for-bit equal to the scalar version.
    """
    c = rgb.astype(np.float64) / 255.0
    r, g, b = c[:, 0], c[:, 1], c[:, 2]
    c_max = np.maximum(np.maximum(r, g), b)
    c_min = np.minimum(np.minimum(r, g), b)
    delta = c_max - c_min

    with np.errstate(divide="ignore", invalid="ignore"):
        h_red = np.fmod((g - b) / delta, 6.0)
        h_green = (b - r) / delta + 2.0
        h_blue = (r - g) / delta + 4.0
        s = np.where(c_max != 0, delta / c_max, 0.0)

    h = np.where(c_max == r, h_red, np.where(c_max == g, h_green, h_blue))
    h = np.where(delta == 0, 0.0, h) / 6.0
    h = np.where(h < 0, h + 1.0, h)
    return np.stack([h, s, c_max], axis=1)


def _readonly(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


class PixelBuffer:
    """
    Ordered, read-only collection of pixels.

    Backed by an Nx3 uint8 RGB array and its cached Nx3 HSV array, so whole-image
    operations stay vectorised. Indexing yields Pixel values; every
    transformation returns a new buffer.
    """

    def __init__(self, rgb: np.ndarray, _hsv: Optional[np.ndarray] = None):
        rgb = np.asarray(rgb)
        if rgb.ndim != 2 or rgb.shape[1] != 3:
            raise InvalidParameterError(f"Expected an Nx3 RGB array, got shape {rgb.shape}")
        if rgb.dtype != np.uint8:
            if rgb.size and (rgb.min() < 0 or rgb.max() > 255):
                raise InvalidParameterError("RGB values must be within 0-255")
            rgb = rgb.astype(np.uint8)
        self._rgb = _readonly(np.array(rgb, dtype=np.uint8, copy=True))
        if _hsv is None:
            _hsv = rgb_to_hsv_array(self._rgb)
        self._hsv = _readonly(np.array(_hsv, dtype=np.float64, copy=True))

    @classmethod
    def from_pixels(cls, pixels: Iterable[Pixel]) -> "PixelBuffer":
        rows = [p.rgb for p in pixels]
        return cls(np.array(rows, dtype=np.uint8).reshape(-1, 3))

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        """
        Expands a PIL image column by column (outer loop over x, inner over y).

        Raises:
            UnsupportedColorFormatError: If the image mode has no RGB interpretation here.
        """
        if image.mode not in SUPPORTED_MODES:
            raise UnsupportedColorFormatError(f"Not supported image mode: [{image.mode}]")
        arr = np.asarray(image.convert("RGB"), dtype=np.uint8) # (H, W, 3)
        return cls(arr.transpose(1, 0, 2).reshape(-1, 3))

    @property
    def rgb(self) -> np.ndarray:
        return self._rgb

    @property
    def hsv(self) -> np.ndarray:
        return self._hsv

    def __len__(self) -> int:
        return self._rgb.shape[0]

    def __getitem__(self, idx: int) -> Pixel:
        r, g, b = self._rgb[idx]
        return Pixel(int(r), int(g), int(b))

    def __iter__(self) -> Iterator[Pixel]:
        for r, g, b in self._rgb.tolist():
            yield Pixel(r, g, b)

    def __repr__(self) -> str:
        return f"PixelBuffer(len={len(self)})"

    def take(self, indices) -> "PixelBuffer":
        """Buffer of the elements at `indices`; repeats are allowed."""
        indices = np.asarray(indices, dtype=np.intp)
        return PixelBuffer(self._rgb[indices], _hsv=self._hsv[indices])

    def select(self, mask: np.ndarray) -> "PixelBuffer":
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (len(self),):
            raise InvalidParameterError(f"Mask of shape {mask.shape} does not match buffer length {len(self)}")
        return PixelBuffer(self._rgb[mask], _hsv=self._hsv[mask])

    def distance_hsv(self, pixel: Pixel) -> np.ndarray:
        """Nx3 array of |ΔH|, |ΔS|, |ΔV| from every element to `pixel`."""
        return np.abs(self._hsv - np.array(pixel.hsv, dtype=np.float64))

    def distance_rgb(self, pixel: Pixel) -> np.ndarray:
        """Squared RGB distance from every element to `pixel`, as int64."""
        diff = self._rgb.astype(np.int64) - np.array(pixel.rgb, dtype=np.int64)
        return np.einsum("ij,ij->i", diff, diff)

    def most_frequent(self) -> Pixel:
        """
        The most common exact color.

        Ties resolve to the color with the lowest packed value; callers should
        treat the winner among equally common colors as unspecified.
        """
        if len(self) == 0:
            raise EmptyInputError("Cannot pick the most frequent color of an empty buffer")
        rgb = self._rgb.astype(np.int32)
        packed = rgb[:, 0] << 16 | rgb[:, 1] << 8 | rgb[:, 2]
        values, counts = np.unique(packed, return_counts=True)
        winner = int(values[np.argmax(counts)])
        return Pixel((winner >> 16) & 0xFF, (winner >> 8) & 0xFF, winner & 0xFF)

    def quantize_all(self, shift: int) -> "PixelBuffer":
        check_shift(shift)
        mask = np.uint8((0xFF >> shift) << shift)
        return PixelBuffer(self._rgb & mask)

    def average(self) -> Pixel:
        n = len(self)
        if n == 0:
            raise EmptyInputError("Cannot average zero pixels")
        totals = self._rgb.sum(axis=0, dtype=np.int64)
        scale = 1.0 / n
        r, g, b = (float_to_channel(int(t) * scale) for t in totals)
        return Pixel(r, g, b)

    def to_image(self, width: int, height: int) -> Image.Image:
        """
        Rebuilds an RGB image, replaying the traversal order of from_image.

        Raises:
            InvalidParameterError: If width * height does not match the buffer length.
        """
        if width * height != len(self):
            raise InvalidParameterError(
                f"Cannot lay out {len(self)} pixels as a {width}x{height} image"
            )
        arr = self._rgb.reshape(width, height, 3).transpose(1, 0, 2)
        return Image.fromarray(np.ascontiguousarray(arr), "RGB")
