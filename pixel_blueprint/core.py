"""
Turn an AI-generated draft image into a numbered pixel-art blueprint.

The draft is averaged down to a square grid, its colors are reduced to a
small palette, and every grid cell is redrawn as a large flat block with a
faint gridline and its palette number, ready to be copied by hand as a
mosaic, bead pattern or cross-stitch chart.
"""

import io
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from scipy.spatial.distance import cdist

from .palette import ALPHA_THRESHOLD, PaletteItem, build_palette

MIN_CELL_SCALE = 16
TARGET_CANVAS_SIZE = 1200
GRID_LINE_COLOR = (0, 0, 0, 38)  # black at ~15% opacity
LABEL_FONT_RATIO = 0.4
LABEL_FONTS = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf")


class BlueprintError(Exception):
    pass


class DecodeError(BlueprintError):
    """The source could not be read as pixel data."""


class RenderTargetError(BlueprintError):
    """A drawing surface of the required size could not be allocated."""


@dataclass
class GenerationResult:
    rendered_image: Image.Image
    palette: list[PaletteItem]
    resolution: int
    pixel_map: np.ndarray = field(repr=False)
    source: Image.Image | None = field(default=None, repr=False)

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.rendered_image.save(buf, format="PNG")
        return buf.getvalue()

    def palette_key(self) -> list[dict]:
        return [item.to_dict() for item in self.palette]


def load_source(source: str | Path | bytes | Image.Image) -> Image.Image:
    """Decode a path, raw encoded bytes or an existing image into RGBA."""
    try:
        if isinstance(source, Image.Image):
            img = source
        elif isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(source)
        img.load()
        rgba = img.convert("RGBA")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"Could not decode source image: {exc}") from exc

    if rgba.size[0] == 0 or rgba.size[1] == 0:
        raise DecodeError(f"Source image is empty ({rgba.size[0]}x{rgba.size[1]})")
    return rgba


def downsample(img: Image.Image, resolution: int) -> np.ndarray:
    """Average the image down to resolution x resolution RGBA samples."""
    small = img.convert("RGBA").resize((resolution, resolution), Image.Resampling.BOX)
    return np.array(small, dtype=np.uint8)


def classify_cells(
    pixels: np.ndarray,
    palette: list[PaletteItem],
) -> np.ndarray:
    """
    Assign every opaque cell the id of its nearest palette entry.

    Distances use the cell's own averaged color, not its bucketed histogram
    color. Transparent cells (alpha <= 128) get 0. Palette counts are
    incremented in place.
    """
    h, w = pixels.shape[:2]
    pixel_map = np.zeros((h, w), dtype=np.int32)
    opaque = pixels[:, :, 3] > ALPHA_THRESHOLD
    if not palette or not opaque.any():
        return pixel_map

    cells = pixels[opaque][:, :3].astype(np.float64)
    colors = np.array([item.rgb for item in palette], dtype=np.float64)
    ids = np.array([item.id for item in palette], dtype=np.int32)

    # argmin keeps the first minimum, so ties go to the earlier (lower) id
    nearest = np.argmin(cdist(cells, colors, "sqeuclidean"), axis=1)
    pixel_map[opaque] = ids[nearest]

    for item, count in zip(palette, np.bincount(nearest, minlength=len(palette))):
        item.count += int(count)

    return pixel_map


def cell_scale(resolution: int) -> int:
    return max(MIN_CELL_SCALE, TARGET_CANVAS_SIZE // resolution)


def load_label_font(size: int) -> ImageFont.ImageFont:
    for name in LABEL_FONTS:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def draw_blueprint(
    pixel_map: np.ndarray,
    palette: list[PaletteItem],
    scale: int,
) -> Image.Image:
    """
    Draw the enlarged, numbered grid.

    Each assigned cell becomes a scale x scale block in its palette color
    with a 1px translucent outline and its id centered on top. Unassigned
    cells stay white.
    """
    rows, cols = pixel_map.shape
    width, height = cols * scale, rows * scale
    try:
        canvas = Image.new("RGB", (width, height), (255, 255, 255))
    except (MemoryError, ValueError) as exc:
        raise RenderTargetError(f"Could not allocate {width}x{height} canvas") from exc

    draw = ImageDraw.Draw(canvas, "RGBA")
    font = load_label_font(int(scale * LABEL_FONT_RATIO))
    by_id = {item.id: item for item in palette}

    for row in range(rows):
        for col in range(cols):
            item = by_id.get(int(pixel_map[row, col]))
            if item is None:
                continue

            x0 = col * scale
            y0 = row * scale
            box = [(x0, y0), (x0 + scale - 1, y0 + scale - 1)]

            draw.rectangle(box, fill=item.rgb)
            draw.rectangle(box, outline=GRID_LINE_COLOR, width=1)
            draw.text(
                (x0 + scale / 2, y0 + scale / 2),
                str(item.id),
                fill=item.text_color,
                font=font,
                anchor="mm",
            )

    return canvas


def render(
    source: str | Path | bytes | Image.Image,
    resolution: int,
    max_colors: int,
    verbose: bool = False,
) -> GenerationResult:
    """
    Build a blueprint from a draft image.

    Args:
        source: Image path, encoded image bytes or a PIL image
        resolution: Grid cells per side
        max_colors: Palette budget
        verbose: Print progress info

    Returns:
        The rendered blueprint, the palette of colors actually used (ids
        ascending) and the per-cell id map.
    """
    img = load_source(source)

    if verbose:
        print(f"Input image: {img.size[0]}x{img.size[1]}")

    pixels = downsample(img, resolution)

    if verbose:
        print(f"Grid: {resolution}x{resolution}, budget {max_colors} colors")

    draft = build_palette(pixels, max_colors, verbose=verbose)
    pixel_map = classify_cells(pixels, draft)

    # Ids are kept as assigned, gaps and all
    palette = sorted((item for item in draft if item.count > 0), key=lambda item: item.id)

    if verbose:
        dropped = len(draft) - len(palette)
        print(f"Palette: {len(palette)} colors" + (f" ({dropped} unused dropped)" if dropped else ""))

    scale = cell_scale(resolution)
    rendered = draw_blueprint(pixel_map, palette, scale)

    if verbose:
        print(f"Blueprint: {rendered.size[0]}x{rendered.size[1]} ({scale}px cells)")

    return GenerationResult(
        rendered_image=rendered,
        palette=palette,
        resolution=resolution,
        pixel_map=pixel_map,
        source=img,
    )


def create_blueprint(
    input_path: str | Path,
    output_path: str | Path | None = None,
    resolution: int = 64,
    max_colors: int = 32,
    verbose: bool = True,
) -> GenerationResult:
    """
    Render a blueprint from an image file and optionally save it as PNG.
    """
    result = render(input_path, resolution, max_colors, verbose=verbose)

    if output_path:
        result.rendered_image.save(output_path, format="PNG")
        if verbose:
            print(f"Saved to: {output_path}")

    return result
