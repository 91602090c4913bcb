"""Pytest configuration and fixtures."""

import numpy as np
import pytest


def make_checkerboard(size: int = 64, square: int = 8,
                      dark=(0, 0, 0), light=(255, 255, 255)) -> np.ndarray:
    """Two-color checkerboard, top-left square dark."""
    ys, xs = np.mgrid[0:size, 0:size]
    mask = ((xs // square) + (ys // square)) % 2 == 1
    image = np.empty((size, size, 3), dtype=np.uint8)
    image[~mask] = dark
    image[mask] = light
    return image


@pytest.fixture
def solid_image():
    """64x64 image of a single color."""
    image = np.zeros((64, 64, 3), dtype=np.uint8)
    image[:] = [200, 80, 40]
    return image


@pytest.fixture
def checkerboard_image():
    """64x64 black and white checkerboard with 8x8 squares."""
    return make_checkerboard(64, 8)


@pytest.fixture
def gradient_image():
    """48x40 image with a diagonal gradient and a bright disc."""
    h, w = 40, 48
    ys, xs = np.mgrid[0:h, 0:w]
    image = np.zeros((h, w, 3), dtype=np.uint8)
    image[..., 0] = (255 * xs / (w - 1)).astype(np.uint8)
    image[..., 2] = (255 * ys / (h - 1)).astype(np.uint8)
    disc = (xs - 30) ** 2 + (ys - 15) ** 2 < 64
    image[disc] = [250, 240, 60]
    return image


@pytest.fixture
def image_file(tmp_path, gradient_image):
    """Gradient image saved as PNG."""
    from PIL import Image

    path = tmp_path / "gradient.png"
    Image.fromarray(gradient_image).save(path)
    return path


@pytest.fixture
def large_checkerboard_image():
    """128x128 checkerboard with 16x16 squares."""
    return make_checkerboard(128, 16)
