"""Perceptual color conversion and distance (CIELAB, D65)."""
import warnings

import numpy as np
from skimage.color import rgb2lab, lab2rgb


def _as_unit_rgb(rgb: np.ndarray) -> np.ndarray:
    """Scale uint8 input to [0, 1] and clamp everything else."""
    rgb = np.asarray(rgb)
    if rgb.dtype == np.uint8:
        return rgb.astype(np.float64) / 255.0
    return np.clip(rgb.astype(np.float64), 0.0, 1.0)


def to_perceptual(rgb: np.ndarray) -> np.ndarray:
    """
    Convert sRGB to CIELAB.

    Args:
        rgb: Array (..., 3), uint8 in [0, 255] or float in [0, 1].
             Float values outside [0, 1] are clamped.

    Returns:
        float64 Lab array with the same leading shape
    """
    unit = _as_unit_rgb(rgb)
    if unit.shape[-1] != 3:
        raise ValueError(f"Expected 3 color channels, got shape {unit.shape}")
    flat = unit.reshape(-1, 1, 3)
    lab = rgb2lab(flat)
    return lab.reshape(unit.shape).astype(np.float64, copy=False)


def from_perceptual(lab: np.ndarray) -> np.ndarray:
    """
    Convert CIELAB to sRGB in [0, 1].

    Lab values that fall outside the sRGB gamut are clamped.
    """
    lab = np.asarray(lab, dtype=np.float64)
    flat = lab.reshape(-1, 1, 3)
    with warnings.catch_warnings():
        # lab2rgb warns when it clips negative Z values
        warnings.simplefilter("ignore", UserWarning)
        rgb = lab2rgb(flat)
    return np.clip(rgb.reshape(lab.shape), 0.0, 1.0)


def to_rgb8(lab: np.ndarray) -> np.ndarray:
    """Convert CIELAB to sRGB uint8."""
    return np.rint(from_perceptual(lab) * 255.0).astype(np.uint8)


def distance(color_a: np.ndarray, color_b: np.ndarray) -> np.ndarray:
    """
    Euclidean (Delta E 76) distance between Lab colors.

    Broadcasts over leading dimensions; returns a float for single colors.
    """
    a = np.asarray(color_a, dtype=np.float64)
    b = np.asarray(color_b, dtype=np.float64)
    d = a - b
    result = np.sqrt(d[..., 0] ** 2 + d[..., 1] ** 2 + d[..., 2] ** 2)
    if np.ndim(result) == 0:
        return float(result)
    return result


def distance_matrix(colors_a: np.ndarray, colors_b: np.ndarray) -> np.ndarray:
    """
    Pairwise Lab distances.

    Args:
        colors_a: (N, 3) Lab colors
        colors_b: (M, 3) Lab colors

    Returns:
        (N, M) distance matrix. Every entry is computed channel by channel,
        so its value does not depend on how the inputs are chunked.
    """
    a = np.asarray(colors_a, dtype=np.float64)
    b = np.asarray(colors_b, dtype=np.float64)
    d0 = a[:, None, 0] - b[None, :, 0]
    d1 = a[:, None, 1] - b[None, :, 1]
    d2 = a[:, None, 2] - b[None, :, 2]
    return np.sqrt(d0 * d0 + d1 * d1 + d2 * d2)
