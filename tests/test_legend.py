# tests/test_legend.py
from PIL import Image
import numpy as np
import pytest
from nscan import legend
from nscan.pixel import Pixel


def test_create_legend_image_returns_image(tmp_path):
    # Background first, then two ink colors
    palette = [
        Pixel(250, 250, 245),
        Pixel(20, 20, 160),
        Pixel(200, 30, 30)
    ]

    legend_image = legend.create_legend_image(palette, font_size=12, swatch_size=20, padding=5)

    assert isinstance(legend_image, Image.Image)

    num_colors = len(palette)
    expected_width = (20 * num_colors) + (5 * (num_colors + 1))
    expected_height = 20 + (2 * 5)
    assert legend_image.size == (expected_width, expected_height)

    # Swatch corners carry the palette colors in order
    for idx, color in enumerate(palette):
        x = 5 + idx * (20 + 5) + 2
        assert legend_image.getpixel((x, 5 + 2)) == color.rgb

    outpath = tmp_path / "legend_test_output.png"
    legend_image.save(outpath)
    assert outpath.exists()


def test_create_legend_image_with_empty_palette():
    assert legend.create_legend_image([]) is None


def test_create_legend_image_handles_numpy_and_tuple_palettes():
    palette = np.array([
        [255, 255, 0],
        [0, 255, 255]
    ], dtype=np.uint8)

    img = legend.create_legend_image(palette, font_size=10, swatch_size=15, padding=2)
    assert isinstance(img, Image.Image)
    assert img.size[1] == 15 + (2 * 2)

    img = legend.create_legend_image([(0, 0, 0)], swatch_size=15, padding=2)
    assert img.size == (15 + 2 * 2, 15 + 2 * 2)


def test_create_legend_image_rejects_malformed_colors():
    with pytest.raises(ValueError):
        legend.create_legend_image(["red"])
