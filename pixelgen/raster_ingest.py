"""Raster image ingestion."""
from pathlib import Path
from typing import Union
import numpy as np
from PIL import Image
from PIL import ImageOps

from pixelgen.types import IngestResult, IngestError


def _composite_on_white(rgb: np.ndarray, alpha: np.ndarray) -> np.ndarray:
    """Blend float RGB in [0, 1] over white using alpha in [0, 1]."""
    return rgb * alpha + (1.0 - alpha)


def ingest(path: Union[str, Path]) -> IngestResult:
    """
    Ingest a raster image file.

    Applies the EXIF orientation and composites transparency on white.

    Args:
        path: Path to image file

    Returns:
        IngestResult with an (H, W, 3) uint8 sRGB image

    Raises:
        FileNotFoundError: If file doesn't exist
        IngestError: If file cannot be loaded
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if not path.is_file():
        raise IngestError(f"Path is not a file: {path}")

    try:
        with Image.open(path) as img:
            img = ImageOps.exif_transpose(img)

            if img.mode in ('RGBA', 'LA', 'P'):
                rgba = img.convert('RGBA')
                has_alpha = True
                background = Image.new('RGB', rgba.size, (255, 255, 255))
                background.paste(rgba, mask=rgba.split()[3])
                img = background
            else:
                has_alpha = False
                if img.mode != 'RGB':
                    img = img.convert('RGB')

            width, height = img.size
            image_srgb = np.array(img, dtype=np.uint8)

    except (IOError, OSError) as e:
        raise IngestError(f"Failed to load image {path}: {e}") from e

    return IngestResult(
        image_srgb=image_srgb,
        original_path=str(path),
        width=width,
        height=height,
        has_alpha=has_alpha
    )


def ingest_from_array(image: np.ndarray, path: str = "") -> IngestResult:
    """
    Create IngestResult from numpy array.

    Args:
        image: (H, W), (H, W, 3) or (H, W, 4) array, uint8 or float in [0, 1]
        path: Optional path for reference

    Returns:
        IngestResult

    Raises:
        IngestError: If the array shape is not an image
    """
    image = np.asarray(image)

    if image.ndim == 2:
        image = np.stack([image] * 3, axis=-1)

    if image.ndim != 3:
        raise IngestError(f"Expected 3D array, got {image.ndim}D")

    if image.shape[0] == 0 or image.shape[1] == 0:
        raise IngestError(f"Image is empty: {image.shape}")

    if image.dtype == np.uint8:
        unit = image.astype(np.float64) / 255.0
    else:
        unit = np.clip(image.astype(np.float64), 0.0, 1.0)

    if unit.shape[2] == 4:
        has_alpha = True
        srgb = _composite_on_white(unit[..., :3], unit[..., 3:4])
    elif unit.shape[2] == 3:
        has_alpha = False
        srgb = unit
    else:
        raise IngestError(f"Expected 3 or 4 channels, got {image.shape[2]}")

    if image.dtype == np.uint8 and not has_alpha:
        image_srgb = image.copy()
    else:
        image_srgb = np.rint(srgb * 255.0).astype(np.uint8)

    height, width = image_srgb.shape[:2]

    return IngestResult(
        image_srgb=image_srgb,
        original_path=path,
        width=width,
        height=height,
        has_alpha=has_alpha
    )
