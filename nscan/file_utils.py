import re
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image, PngImagePlugin

from nscan.errors import InvalidParameterError, PaletteUnavailableError
from nscan.options import MAX_PALETTE_COLORS
from nscan.pixel import Pixel

PNG_METADATA_PREFIX = "notescan:"

ColorLike = Union[Pixel, Tuple[int, int, int]]


def load_image(input_path: Union[str, Path]) -> Image.Image:
    """
    Opens and fully decodes an image so the file handle can be released.

    Raises:
        FileNotFoundError: If the path does not exist.
        PIL.UnidentifiedImageError: If Pillow cannot recognise the format.
    """
    with Image.open(input_path) as img:
        img.load()
        return img.copy()


def output_path_for(
    input_path: Union[str, Path],
    suffix: str = "_processed",
    gif: bool = False,
    output_dir: Optional[Path] = None,
) -> Path:
    """scan.jpg -> scan_processed.png (or .gif), beside the input unless output_dir is given."""
    input_path = Path(input_path)
    extension = ".gif" if gif else ".png"
    directory = output_dir if output_dir is not None else input_path.parent
    return Path(directory) / f"{input_path.stem}{suffix}{extension}"


def _ensure_parent(output_path: Path) -> Path:
    if not isinstance(output_path, Path):
        output_path = Path(output_path)
    if not output_path.parent.exists():
        output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path


def _clean_metadata_key(key: str) -> str:
    key_clean = re.sub(r'\s+', '_', key)
    key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
    if not re.match(r'^[a-zA-Z_]', key_clean): # Must start with letter or underscore
        key_clean = "notescan_" + key_clean
    return key_clean[:70] # tEXt keywords are limited to 79 bytes, prefix included


def save_png(
    image_to_save: Image.Image,
    output_path: Path,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
):
    """
    Saves an image as a maximally compressed PNG, embedding notescan metadata.
    """
    output_path = _ensure_parent(output_path)

    png_info = PngImagePlugin.PngInfo()
    if command_line_invocation:
        png_info.add_text(f"{PNG_METADATA_PREFIX}command_line", command_line_invocation)
    png_info.add_text("Software", "notescan")

    if additional_metadata:
        for key, value in additional_metadata.items():
            png_info.add_text(f"{PNG_METADATA_PREFIX}{_clean_metadata_key(key)}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info, compress_level=9)


def _palette_array(palette: Optional[Sequence[ColorLike]]) -> np.ndarray:
    if palette is None or len(palette) == 0:
        raise PaletteUnavailableError("Palette is not available; run the conversion before indexed encoding")
    if len(palette) > MAX_PALETTE_COLORS:
        raise InvalidParameterError(f"Indexed images hold at most {MAX_PALETTE_COLORS} colors, got {len(palette)}")
    rows = [c.rgb if isinstance(c, Pixel) else tuple(int(v) for v in c) for c in palette]
    return np.array(rows, dtype=np.int64).reshape(-1, 3)


def to_indexed_image(image: Image.Image, palette: Optional[Sequence[ColorLike]]) -> Image.Image:
    """
    Converts an RGB image into a 'P' image whose palette is exactly `palette`, in order.

    Each pixel takes the index of the nearest palette color, which is an exact
    match for images produced by nscan.shrink.

    Raises:
        PaletteUnavailableError: If no palette is given.
    """
    pal = _palette_array(palette)
    rgb = np.asarray(image.convert("RGB"), dtype=np.int64)
    h, w, _ = rgb.shape
    flat = rgb.reshape(-1, 3)

    dists = np.stack([((flat - color) ** 2).sum(axis=1) for color in pal], axis=1)
    nearest = np.argmin(dists, axis=1).astype(np.uint8)

    indexed = Image.fromarray(nearest.reshape(h, w))
    indexed.putpalette(pal.astype(np.uint8).flatten().tolist())
    return indexed


def save_gif(image: Image.Image, output_path: Path, palette: Optional[Sequence[ColorLike]]):
    """
    Saves an indexed GIF using the given palette (background first).

    Raises:
        PaletteUnavailableError: If `palette` is None or empty.
    """
    indexed = to_indexed_image(image, palette)
    output_path = _ensure_parent(output_path)
    # optimize would let Pillow reorder or drop palette entries
    indexed.save(output_path, "GIF", optimize=False)
