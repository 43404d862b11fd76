import numpy as np
import pytest

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


@pytest.fixture
def red_blue_pixels() -> np.ndarray:
    """64x64: top 48 rows red, bottom 16 rows blue (3072 / 1024 cells)."""
    pixels = np.zeros((64, 64, 4), dtype=np.uint8)
    pixels[:48] = RED
    pixels[48:] = BLUE
    return pixels


@pytest.fixture
def noisy_pixels() -> np.ndarray:
    rng = np.random.default_rng(1234)
    pixels = rng.integers(0, 256, size=(32, 32, 4), dtype=np.uint8)
    pixels[:, :, 3] = 255
    pixels[:4, :4, 3] = 0
    return pixels
