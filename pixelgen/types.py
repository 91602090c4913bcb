"""Core types for the pixel art pipeline."""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import numpy as np


DECAY_LAWS = ("linear", "exponential")
SEEDING_STRATEGIES = ("farthest", "variance")


@dataclass
class PixelArtConfig:
    """Configuration for the pixel art pipeline."""
    # Segmentation
    n_superpixels: int = 256
    max_side: Optional[int] = None  # None = native resolution

    # Palette
    n_colors: int = 16
    palette_seeding: str = "farthest"
    palette_max_iter: int = 100
    palette_tolerance: float = 1e-4  # relative, as KMeans tol

    # Annealing schedule
    max_iterations: int = 60
    min_iterations: int = 3
    convergence_threshold: float = 0.002
    lambda_start: float = 40.0
    lambda_end: float = 8.0
    radius_factor: float = 2.0   # final search radius in units of grid spacing
    decay_fraction: float = 0.5  # fraction of max_iterations for the radius decay
    decay: str = "exponential"

    # Superpixel shape
    max_elongation: float = 4.0
    snap_orientation: bool = True

    # Smoothing between iterations
    position_smoothing: float = 0.4
    color_smoothing: float = 0.5

    # Reproducibility and performance
    seed: int = 0
    workers: Optional[int] = None  # None = os.cpu_count()
    chunk_rows: int = 16

    def validate(self, width: int, height: int) -> None:
        """
        Check parameters against the output grid size.

        Args:
            width: Output grid width in cells
            height: Output grid height in cells

        Raises:
            ConfigurationError: If any parameter is out of range
        """
        if self.max_side is not None and self.max_side <= 0:
            raise ConfigurationError(f"max_side must be positive, got {self.max_side}")
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"Output grid must be non-empty, got {width}x{height}")
        if self.n_superpixels <= 0:
            raise ConfigurationError(f"n_superpixels must be positive, got {self.n_superpixels}")
        if self.n_colors <= 0:
            raise ConfigurationError(f"n_colors must be positive, got {self.n_colors}")
        if self.n_superpixels > width * height:
            raise ConfigurationError(
                f"n_superpixels ({self.n_superpixels}) exceeds the number of "
                f"output cells ({width}x{height} = {width * height})"
            )
        if self.max_iterations <= 0:
            raise ConfigurationError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.min_iterations < 1:
            raise ConfigurationError(f"min_iterations must be >= 1, got {self.min_iterations}")
        if self.lambda_start < 0 or self.lambda_end < 0:
            raise ConfigurationError("lambda_start and lambda_end must be non-negative")
        if self.decay == "exponential" and (self.lambda_start == 0) != (self.lambda_end == 0):
            raise ConfigurationError("exponential decay needs both lambda values non-zero")
        if self.radius_factor <= 0:
            raise ConfigurationError(f"radius_factor must be positive, got {self.radius_factor}")
        if not 0.0 < self.decay_fraction <= 1.0:
            raise ConfigurationError(f"decay_fraction must be in (0, 1], got {self.decay_fraction}")
        if self.decay not in DECAY_LAWS:
            raise ConfigurationError(f"decay must be one of {DECAY_LAWS}, got {self.decay!r}")
        if self.palette_seeding not in SEEDING_STRATEGIES:
            raise ConfigurationError(
                f"palette_seeding must be one of {SEEDING_STRATEGIES}, got {self.palette_seeding!r}"
            )
        if self.max_elongation < 1.0:
            raise ConfigurationError(f"max_elongation must be >= 1, got {self.max_elongation}")
        for name in ("position_smoothing", "color_smoothing"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if self.palette_max_iter <= 0:
            raise ConfigurationError(f"palette_max_iter must be positive, got {self.palette_max_iter}")
        if not 0.0 <= self.convergence_threshold <= 1.0:
            raise ConfigurationError(
                f"convergence_threshold must be in [0, 1], got {self.convergence_threshold}"
            )
        if self.palette_tolerance < 0:
            raise ConfigurationError(
                f"palette_tolerance must be non-negative, got {self.palette_tolerance}"
            )
        if self.workers is not None and self.workers <= 0:
            raise ConfigurationError(f"workers must be positive, got {self.workers}")
        if self.chunk_rows <= 0:
            raise ConfigurationError(f"chunk_rows must be positive, got {self.chunk_rows}")


@dataclass
class IngestResult:
    """Result from raster image ingestion."""
    image_srgb: np.ndarray  # (H, W, 3) uint8
    original_path: str
    width: int
    height: int
    has_alpha: bool


@dataclass
class Palette:
    """Clustered palette for the superpixel colors."""
    colors_lab: np.ndarray  # (K, 3)
    colors_rgb: np.ndarray  # (K, 3) uint8
    assignment: np.ndarray  # (M,) palette index per superpixel
    iterations: int = 0
    converged: bool = True
    inertia: float = 0.0

    def __len__(self) -> int:
        return len(self.colors_lab)

    def members(self, index: int) -> np.ndarray:
        """Superpixel indices mapped to palette entry ``index``."""
        return np.flatnonzero(self.assignment == index)


@dataclass
class PixelArtResult:
    """Output of a pixel art run."""
    indices: np.ndarray        # (H_out, W_out) palette index per cell
    labels: np.ndarray         # (H_out, W_out) owning superpixel per cell
    palette: Palette
    iterations: int
    converged: bool
    history: List[float] = field(default_factory=list)  # changed fraction per pass

    @property
    def palette_rgb(self) -> np.ndarray:
        return self.palette.colors_rgb

    @property
    def palette_lab(self) -> np.ndarray:
        return self.palette.colors_lab

    @property
    def superpixel_palette_index(self) -> np.ndarray:
        return self.palette.assignment

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the output grid."""
        return int(self.indices.shape[1]), int(self.indices.shape[0])

    def to_image(self) -> np.ndarray:
        """Rasterize to an (H_out, W_out, 3) uint8 array."""
        return self.palette.colors_rgb[self.indices]


class PixelArtError(Exception):
    """Base exception for pixel art errors."""
    pass


class ConfigurationError(PixelArtError, ValueError):
    """Invalid parameters, detected before any iteration runs."""
    pass


class IngestError(PixelArtError):
    """Exception raised when an input image cannot be loaded."""
    pass


class ConvergenceWarning(UserWarning):
    """Iteration cap reached before the partition stabilized."""
    pass
