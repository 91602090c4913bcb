"""Main pipeline orchestrator for pixelgen."""
import logging
import warnings
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from pixelgen.assignment import assign_cells
from pixelgen.grid import OutputGrid, build_output_grid, output_size
from pixelgen.lattice import SuperpixelLattice
from pixelgen.palette import quantize_palette
from pixelgen.raster_ingest import ingest, ingest_from_array
from pixelgen.scheduler import AnnealingScheduler, ScheduleState
from pixelgen.types import (
    ConfigurationError,
    ConvergenceWarning,
    IngestResult,
    PixelArtConfig,
    PixelArtResult,
)
from pixelgen.updater import UpdateStats, update_lattice
from pixelgen.workers import WorkerPool

logger = logging.getLogger(__name__)

ImageInput = Union[str, Path, np.ndarray]
IterationCallback = Callable[[ScheduleState, np.ndarray, SuperpixelLattice, UpdateStats], None]


class PixelArtPipeline:
    """Segment an image into superpixels and map them onto a small palette."""

    def __init__(self, config: Optional[PixelArtConfig] = None):
        """
        Initialize pipeline with configuration.

        Args:
            config: Pipeline configuration. Uses defaults if None.
        """
        self.config = config or PixelArtConfig()
        self.debug_stages: List[Tuple[str, np.ndarray]] = []

        # Stage outputs
        self.ingest_result: Optional[IngestResult] = None
        self.grid: Optional[OutputGrid] = None
        self.lattice: Optional[SuperpixelLattice] = None
        self.scheduler: Optional[AnnealingScheduler] = None

    def process(
        self,
        image: ImageInput,
        debug: bool = False,
        callback: Optional[IterationCallback] = None,
    ) -> PixelArtResult:
        """
        Run the full pipeline.

        Args:
            image: Image path or array (see ``ingest_from_array``)
            debug: If True, keep the superpixel label grid of every pass
                in ``debug_stages``
            callback: Called after every assignment + update pass with the
                schedule state, the owner array, the lattice and the update
                statistics

        Returns:
            PixelArtResult

        Raises:
            FileNotFoundError: If an input path doesn't exist
            IngestError: If the image cannot be read
            ConfigurationError: If parameters are invalid for this image
        """
        if isinstance(image, (str, Path)):
            self.ingest_result = ingest(image)
        else:
            self.ingest_result = ingest_from_array(image)

        src = self.ingest_result
        width, height = self._validate(src.width, src.height)
        logger.info(
            f"Input {src.width}x{src.height}, output grid {width}x{height}, "
            f"{self.config.n_superpixels} superpixels, {self.config.n_colors} colors"
        )

        self.debug_stages = []
        self.grid = build_output_grid(src.image_srgb, width, height)
        self.lattice = SuperpixelLattice.initialize(self.grid, self.config.n_superpixels)

        with WorkerPool(self.config.workers) as pool:
            owners, iterations, converged, history = self._relax(pool, debug, callback)

        palette = quantize_palette(
            self.lattice.colors,
            self.lattice.counts,
            self.config.n_colors,
            seeding=self.config.palette_seeding,
            max_iter=self.config.palette_max_iter,
            tolerance=self.config.palette_tolerance,
            random_state=self.config.seed,
        )

        labels = self.grid.reshape(owners)
        indices = palette.assignment[labels]
        logger.info(f"Done: {len(palette)} palette entries after {iterations} pass(es)")

        return PixelArtResult(
            indices=indices,
            labels=labels,
            palette=palette,
            iterations=iterations,
            converged=converged,
            history=history,
        )

    def _validate(self, src_width: int, src_height: int) -> Tuple[int, int]:
        """Check the configuration before any iteration runs."""
        if self.config.n_superpixels > src_width * src_height:
            raise ConfigurationError(
                f"n_superpixels ({self.config.n_superpixels}) exceeds the number of "
                f"input pixels ({src_width}x{src_height} = {src_width * src_height})"
            )
        width, height = output_size(src_width, src_height, self.config.max_side)
        self.config.validate(width, height)
        return width, height

    def _relax(
        self,
        pool: WorkerPool,
        debug: bool,
        callback: Optional[IterationCallback],
    ) -> Tuple[np.ndarray, int, bool, List[float]]:
        """Alternate assignment and update passes until the schedule stops."""
        cfg = self.config
        grid, lattice = self.grid, self.lattice
        scheduler = AnnealingScheduler(cfg, lattice.spacing, grid.extent)
        self.scheduler = scheduler
        owners: Optional[np.ndarray] = None

        while not scheduler.state.done:
            state = scheduler.state
            new_owners, changed = assign_cells(
                grid, lattice, state.lam, state.radius, pool,
                previous=owners, chunk_rows=cfg.chunk_rows,
            )
            stats = update_lattice(
                grid, new_owners, lattice, pool,
                max_elongation=cfg.max_elongation,
                snap_orientation=cfg.snap_orientation,
                position_smoothing=cfg.position_smoothing,
                color_smoothing=cfg.color_smoothing,
                chunk_rows=cfg.chunk_rows,
            )
            owners = new_owners
            fraction = changed / grid.n_cells

            logger.info(
                f"Pass {state.iteration}: changed {fraction:.4f}, lambda {state.lam:.2f}, "
                f"radius {state.radius:.2f}, empty {stats.empty}"
            )
            if debug:
                self.debug_stages.append((f"pass_{state.iteration:03d}", grid.reshape(owners)))
            if callback is not None:
                callback(state, owners, lattice, stats)

            scheduler.advance(fraction)

        final = scheduler.state
        if not final.converged:
            message = (
                f"Segmentation did not stabilize within {cfg.max_iterations} passes "
                f"(last change fraction {scheduler.history[-1]:.4f})"
            )
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning)

        return owners, final.iteration, final.converged, list(scheduler.history)


def process_image(
    image: ImageInput,
    output_path: Optional[Union[str, Path]] = None,
    config: Optional[PixelArtConfig] = None,
    scale: int = 1,
) -> PixelArtResult:
    """
    Convenience function to run the pipeline and optionally save a PNG.

    Args:
        image: Image path or array
        output_path: Optional output path (.png, or .svg for vector output)
        config: Pipeline configuration
        scale: Output pixels per cell for PNG output

    Returns:
        PixelArtResult
    """
    from pixelgen.render import save_result

    pipeline = PixelArtPipeline(config)
    result = pipeline.process(image)
    if output_path:
        save_result(result, output_path, scale=scale)
    return result
