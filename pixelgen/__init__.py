"""pixelgen: content-adaptive pixel art from photographs."""
from pixelgen.types import (
    PixelArtConfig,
    PixelArtResult,
    Palette,
    IngestResult,
    PixelArtError,
    ConfigurationError,
    IngestError,
    ConvergenceWarning,
)
from pixelgen.pipeline import PixelArtPipeline, process_image

__version__ = "0.1.0"

__all__ = [
    "PixelArtConfig",
    "PixelArtResult",
    "Palette",
    "IngestResult",
    "PixelArtError",
    "ConfigurationError",
    "IngestError",
    "ConvergenceWarning",
    "PixelArtPipeline",
    "process_image",
]
