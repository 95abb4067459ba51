# tests/test_pixels.py
import numpy as np
import pytest
from PIL import Image
from nscan.errors import EmptyInputError, InvalidParameterError, UnsupportedColorFormatError
from nscan.pixel import Pixel, rgb_to_hsv
from nscan.pixels import PixelBuffer, rgb_to_hsv_array


def make_coordinate_image(width=2, height=3):
    # Each pixel encodes its own (x, y) position in R and G
    img = Image.new("RGB", (width, height))
    for x in range(width):
        for y in range(height):
            img.putpixel((x, y), (x, y, 7))
    return img


def test_from_image_walks_columns_then_rows():
    buf = PixelBuffer.from_image(make_coordinate_image(2, 3))
    assert len(buf) == 6
    assert [p.rgb[:2] for p in buf] == [(0, 0), (0, 1), (0, 2), (1, 0), (1, 1), (1, 2)]


def test_to_image_round_trips_from_image():
    img = make_coordinate_image(4, 3)
    back = PixelBuffer.from_image(img).to_image(4, 3)
    assert back.size == (4, 3)
    assert np.array_equal(np.asarray(img), np.asarray(back))


def test_to_image_rejects_wrong_dimensions():
    buf = PixelBuffer.from_image(make_coordinate_image(2, 3))
    with pytest.raises(InvalidParameterError):
        buf.to_image(3, 3)


def test_grayscale_images_are_supported():
    img = Image.new("L", (2, 2), color=90)
    buf = PixelBuffer.from_image(img)
    assert all(p.rgb == (90, 90, 90) for p in buf)


@pytest.mark.parametrize("mode", ["F", "I", "HSV"])
def test_unsupported_modes_raise(mode):
    img = Image.new(mode, (2, 2))
    with pytest.raises(UnsupportedColorFormatError):
        PixelBuffer.from_image(img)


def test_vectorised_hsv_matches_scalar_conversion():
    rng = np.random.RandomState(0)
    rgb = rng.randint(0, 256, size=(500, 3)).astype(np.uint8)
    rgb[:3] = [(0, 0, 0), (255, 255, 255), (255, 0, 128)]
    hsv = rgb_to_hsv_array(rgb)
    for row, expected in zip(rgb.tolist(), hsv.tolist()):
        assert rgb_to_hsv(*row) == tuple(expected)


def test_buffer_is_read_only():
    buf = PixelBuffer.from_pixels([Pixel(1, 2, 3)])
    with pytest.raises(ValueError):
        buf.rgb[0, 0] = 9


def test_most_frequent_picks_majority():
    buf = PixelBuffer.from_pixels([Pixel(1, 1, 1)] * 3 + [Pixel(2, 2, 2)])
    assert buf.most_frequent() == Pixel(1, 1, 1)


def test_most_frequent_tie_returns_one_of_the_tied_colors():
    candidates = {Pixel(9, 0, 0), Pixel(0, 9, 0)}
    buf = PixelBuffer.from_pixels([Pixel(9, 0, 0), Pixel(0, 9, 0), Pixel(0, 0, 1)] + list(candidates))
    assert buf.most_frequent() in candidates


def test_most_frequent_of_empty_buffer_raises():
    with pytest.raises(EmptyInputError):
        PixelBuffer.from_pixels([]).most_frequent()


def test_quantize_all_matches_pixel_quantize_and_is_idempotent():
    pixels = [Pixel(255, 130, 7), Pixel(3, 64, 201)]
    buf = PixelBuffer.from_pixels(pixels)
    once = buf.quantize_all(3)
    assert list(once) == [p.quantize(3) for p in pixels]
    assert np.array_equal(once.quantize_all(3).rgb, once.rgb)


def test_quantize_all_rejects_shift_of_eight():
    buf = PixelBuffer.from_pixels([Pixel(1, 2, 3)])
    with pytest.raises(InvalidParameterError):
        buf.quantize_all(8)


def test_average():
    single = PixelBuffer.from_pixels([Pixel(17, 99, 250)])
    assert single.average() == Pixel(17, 99, 250)

    pair = PixelBuffer.from_pixels([Pixel(0, 0, 0), Pixel(255, 255, 255)])
    assert pair.average() == Pixel(128, 128, 128)

    with pytest.raises(EmptyInputError):
        PixelBuffer.from_pixels([]).average()


def test_take_allows_repeats_and_select_filters():
    buf = PixelBuffer.from_pixels([Pixel(1, 0, 0), Pixel(2, 0, 0), Pixel(3, 0, 0)])
    assert [p.r for p in buf.take([2, 2, 0])] == [3, 3, 1]
    assert [p.r for p in buf.select(np.array([True, False, True]))] == [1, 3]
    with pytest.raises(InvalidParameterError):
        buf.select(np.array([True]))


def test_vectorised_distances_match_pixel_methods():
    pixels = [Pixel(10, 20, 30), Pixel(200, 100, 0), Pixel(0, 0, 0)]
    target = Pixel(40, 0, 30)
    buf = PixelBuffer.from_pixels(pixels)
    assert buf.distance_rgb(target).tolist() == [p.distance_rgb(target) for p in pixels]
    assert [tuple(row) for row in buf.distance_hsv(target).tolist()] == [p.distance_hsv(target) for p in pixels]
