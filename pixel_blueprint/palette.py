"""
Build a small, ordered palette from an RGBA pixel buffer.

Colors are first bucketed to multiples of 4 so near-identical shades share a
histogram entry, then the closest pair of entries is merged repeatedly until
the palette fits the color budget. The most used color gets id 1.
"""

from dataclasses import dataclass

import numpy as np

ALPHA_THRESHOLD = 128  # alpha at or below this is treated as transparent
BUCKET_STEP = 4

BLACK_TEXT = "#000000"
WHITE_TEXT = "#FFFFFF"


@dataclass
class PaletteItem:
    id: int
    r: int
    g: int
    b: int
    hex: str
    count: int
    text_color: str

    @property
    def rgb(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "r": self.r,
            "g": self.g,
            "b": self.b,
            "hex": self.hex,
            "count": self.count,
            "text_color": self.text_color,
        }


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{c:02x}" for c in (r, g, b))


def contrast_color(r: int, g: int, b: int) -> str:
    """Pick black or white label text for a fill color (YIQ luma >= 128 -> black)."""
    luma = (r * 299 + g * 587 + b * 114) / 1000
    return BLACK_TEXT if luma >= 128 else WHITE_TEXT


def color_distance_sq(c1: tuple[int, int, int], c2: tuple[int, int, int]) -> int:
    """Squared RGB Euclidean distance. No sqrt, only used for comparisons."""
    dr = int(c1[0]) - int(c2[0])
    dg = int(c1[1]) - int(c2[1])
    db = int(c1[2]) - int(c2[2])
    return dr * dr + dg * dg + db * db


def _round_half_up_div(num: int, den: int) -> int:
    # floor(num / den + 0.5) for non-negative ints, without float error
    return (2 * num + den) // (2 * den)


def build_histogram(pixels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Bucket opaque pixels and count each bucket.

    Returns (colors, counts): colors is (k, 3) int64, counts is (k,) int64.
    Entries are ordered by the first pixel (raster order) that fell into them.
    """
    flat = np.asarray(pixels).reshape(-1, 4)
    opaque = flat[flat[:, 3] > ALPHA_THRESHOLD][:, :3].astype(np.int64)
    if len(opaque) == 0:
        return np.zeros((0, 3), dtype=np.int64), np.zeros(0, dtype=np.int64)

    # round(v / 4) * 4 with halves rounded up, clamped so 254/255 stay in range
    half = BUCKET_STEP // 2
    bucketed = np.minimum((opaque + half) // BUCKET_STEP * BUCKET_STEP, 255)

    unique, first_index, counts = np.unique(
        bucketed, axis=0, return_index=True, return_counts=True
    )
    order = np.argsort(first_index, kind="stable")
    return unique[order], counts[order]


class _NearestPairs:
    """
    Tracks, for each row i, the closest entry j > i.

    Picking the row with the smallest cached minimum (lowest i on ties) and
    that row's first minimal column gives the same pair a full row-major
    scan of all pairs would pick, but only the rows touched by a merge get
    rescanned.
    """

    def __init__(self, colors: np.ndarray):
        self.colors = colors
        n = len(colors)
        self.row_min = np.full(n, np.iinfo(np.int64).max, dtype=np.int64)
        self.row_arg = np.full(n, -1, dtype=np.int64)
        for i in range(n - 1):
            self._rescan(i)

    def _rescan(self, i: int) -> None:
        rest = self.colors[i + 1:]
        if len(rest) == 0:
            self.row_min[i] = np.iinfo(np.int64).max
            self.row_arg[i] = -1
            return
        diff = rest - self.colors[i]
        d = np.einsum("ij,ij->i", diff, diff)
        k = int(np.argmin(d))
        self.row_min[i] = d[k]
        self.row_arg[i] = i + 1 + k

    def closest(self) -> tuple[int, int]:
        i = int(np.argmin(self.row_min))
        return i, int(self.row_arg[i])

    def replace(self, i: int, color: np.ndarray) -> None:
        """Update entry i to a new color and refresh the cached minimums."""
        self.colors[i] = color
        self._rescan(i)

        # Rows above i see column i change
        if i > 0:
            diff = self.colors[:i] - color
            d = np.einsum("ij,ij->i", diff, diff)
            stale = self.row_arg[:i] == i
            better = (d < self.row_min[:i]) | ((d == self.row_min[:i]) & (i < self.row_arg[:i]))
            self.row_min[:i] = np.where(better, d, self.row_min[:i])
            self.row_arg[:i] = np.where(better, i, self.row_arg[:i])
            for r in np.nonzero(stale & ~better)[0]:
                self._rescan(int(r))

    def remove(self, j: int) -> None:
        """Drop entry j, shifting later entries down by one."""
        self.colors = np.delete(self.colors, j, axis=0)
        self.row_min = np.delete(self.row_min, j)
        self.row_arg = np.delete(self.row_arg, j)

        stale = self.row_arg == j
        self.row_arg[self.row_arg > j] -= 1
        for r in np.nonzero(stale)[0]:
            self._rescan(int(r))


def reduce_colors(
    colors: np.ndarray,
    counts: np.ndarray,
    max_colors: int,
    verbose: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Greedy nearest-pair merging until at most max_colors entries remain.

    The later entry of the closest pair is folded into the earlier one: the
    color becomes the count-weighted average (rounded half up per channel)
    and the counts add. Exact duplicates always merge first since distance
    0 is the global minimum.
    """
    colors = np.array(colors, dtype=np.int64).reshape(-1, 3)
    counts = [int(c) for c in counts]
    max_colors = max(max_colors, 1)

    if len(counts) <= max_colors:
        return colors, np.array(counts, dtype=np.int64)

    start = len(counts)
    pairs = _NearestPairs(colors)

    while len(counts) > max_colors:
        i, j = pairs.closest()
        c1, c2 = pairs.colors[i], pairs.colors[j]
        n1, n2 = counts[i], counts[j]
        total = n1 + n2
        merged = np.array(
            [_round_half_up_div(int(c1[ch]) * n1 + int(c2[ch]) * n2, total) for ch in range(3)],
            dtype=np.int64,
        )
        counts[i] = total
        del counts[j]
        pairs.remove(j)
        pairs.replace(i, merged)

    if verbose:
        print(f"  Merged {start} colors down to {len(counts)}")

    return pairs.colors, np.array(counts, dtype=np.int64)


def build_palette(
    pixels: np.ndarray,
    max_colors: int,
    verbose: bool = False,
) -> list[PaletteItem]:
    """
    Build the draft palette for an RGBA buffer.

    Args:
        pixels: (height, width, 4) uint8 RGBA array. Not modified.
        max_colors: Color budget. Values <= 0 give an empty palette.
        verbose: Print progress info

    Returns:
        Palette items ordered by descending usage, ids 1..N, all counts 0.
    """
    colors, counts = build_histogram(pixels)

    if verbose:
        print(f"  {len(colors)} unique colors after bucketing")

    if max_colors <= 0 or len(colors) == 0:
        return []

    colors, counts = reduce_colors(colors, counts, max_colors, verbose=verbose)

    # Stable sort keeps first-seen order among equal counts
    order = sorted(range(len(counts)), key=lambda k: counts[k], reverse=True)

    palette = []
    for idx, k in enumerate(order):
        r, g, b = (int(c) for c in colors[k])
        palette.append(PaletteItem(
            id=idx + 1,
            r=r,
            g=g,
            b=b,
            hex=rgb_to_hex(r, g, b),
            count=0,  # filled in by the rasterizer
            text_color=contrast_color(r, g, b),
        ))
    return palette
