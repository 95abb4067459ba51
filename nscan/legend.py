import os

from PIL import Image, ImageDraw, ImageFont

from nscan.pixel import Pixel


def _swatch_rgb(color_data):
    if isinstance(color_data, Pixel):
        return color_data.rgb
    if hasattr(color_data, 'tolist'): # numpy rows
        color_data = color_data.tolist()
    if isinstance(color_data, (list, tuple)) and len(color_data) == 3:
        return tuple(int(c) for c in color_data)
    raise ValueError(f"Cannot draw a swatch for color {color_data!r}")


def create_legend_image(palette, font_path=None, font_size=14, swatch_size=40, padding=10):
    """
    Creates a palette strip: one outlined swatch per color, left to right in palette order.

    Swatch 0 is labelled "bg" (the background color); the foreground colors are
    numbered from 1.

    Args:
        palette (Sequence): Pixels, RGB tuples/lists or an Nx3 ndarray.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the labels.
        swatch_size (int): Width/height of each color swatch.
        padding (int): Space around elements and between swatches.

    Returns:
        PIL.Image.Image: The legend image, or None for an empty palette.
    """
    num_colors = len(palette)
    if num_colors == 0:
        return None

    width = (swatch_size * num_colors) + (padding * (num_colors + 1))
    height = swatch_size + (2 * padding)

    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)

    loaded_font = None
    try:
        if font_path and os.path.isfile(font_path):
            loaded_font = ImageFont.truetype(font_path, font_size)
    except IOError:
        pass # Fall back to the default font below

    if not loaded_font:
        try:
            loaded_font = ImageFont.load_default(size=font_size)
        except TypeError: # Pillow < 10.1 has no size argument
            loaded_font = ImageFont.load_default()

    for idx, color_data in enumerate(palette):
        x_start_swatch = padding + idx * (swatch_size + padding)
        y_start_swatch = padding

        fill_color = _swatch_rgb(color_data)
        draw.rectangle(
            [x_start_swatch, y_start_swatch, x_start_swatch + swatch_size, y_start_swatch + swatch_size],
            fill=fill_color,
            outline=(0, 0, 0)
        )

        text_content = "bg" if idx == 0 else str(idx)
        # Dark swatches get a white label
        text_fill = (0, 0, 0) if Pixel(*fill_color).v >= 0.5 else (255, 255, 255)

        bbox = draw.textbbox((0, 0), text_content, font=loaded_font)
        text_w = bbox[2] - bbox[0]
        text_h = bbox[3] - bbox[1]
        text_x_position = x_start_swatch + (swatch_size - text_w) / 2.0 - bbox[0]
        text_y_position = y_start_swatch + (swatch_size - text_h) / 2.0 - bbox[1]

        draw.text((text_x_position, text_y_position), text_content, fill=text_fill, font=loaded_font)

    return image
