"""Annealing schedule for the shape weight and the search radius."""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

from pixelgen.types import PixelArtConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleState:
    """Where the outer loop stands."""
    iteration: int
    lam: float
    radius: float
    done: bool = False
    converged: bool = False


def interpolate(start: float, end: float, progress: float, law: str) -> float:
    """Decay from ``start`` to ``end`` as progress goes from 0 to 1."""
    progress = min(max(progress, 0.0), 1.0)
    if law == "linear" or start == end:
        return start + (end - start) * progress
    if start == 0.0 or end == 0.0:
        raise ValueError("exponential decay needs non-zero endpoints")
    return start * (end / start) ** progress


class AnnealingScheduler:
    """
    State machine over iterations t = 0..T.

    The search radius shrinks from the full grid extent to
    ``radius_factor * spacing`` by ``decay_fraction * T`` and then stays
    there; the shape weight lambda decays from ``lambda_start`` to
    ``lambda_end`` over the whole run. The run stops once the fraction of
    cells changing owner drops below ``convergence_threshold`` or after
    ``max_iterations`` passes.
    """

    def __init__(self, config: PixelArtConfig, spacing: float, extent: float,
                 window: int = 10):
        self.config = config
        self.radius_end = min(extent, config.radius_factor * spacing)
        self.radius_start = max(extent, self.radius_end)
        self.history: List[float] = []
        self._window: Deque[float] = deque(maxlen=window)
        self.state = self._state_at(0)

    def _state_at(self, t: int, done: bool = False, converged: bool = False) -> ScheduleState:
        cfg = self.config
        radius_steps = max(1.0, cfg.decay_fraction * cfg.max_iterations)
        lam_steps = max(1, cfg.max_iterations - 1)
        radius = interpolate(self.radius_start, self.radius_end, t / radius_steps, cfg.decay)
        lam = interpolate(cfg.lambda_start, cfg.lambda_end, t / lam_steps, cfg.decay)
        return ScheduleState(iteration=t, lam=lam, radius=radius, done=done, converged=converged)

    def advance(self, changed_fraction: float) -> ScheduleState:
        """
        Record the result of the current pass and move to the next state.

        Args:
            changed_fraction: Fraction of cells whose owner changed in the
                pass that just finished

        Returns:
            The new state; ``done`` is set when the loop should stop
        """
        if self.state.done:
            return self.state
        self.history.append(changed_fraction)
        self._window.append(changed_fraction)
        t = self.state.iteration + 1

        if t >= self.config.min_iterations and changed_fraction < self.config.convergence_threshold:
            self.state = self._state_at(t, done=True, converged=True)
        elif t >= self.config.max_iterations:
            self.state = self._state_at(t, done=True, converged=False)
        else:
            self.state = self._state_at(t)
        if self.state.done:
            logger.debug(f"Schedule finished after {t} pass(es), converged={self.state.converged}")
        return self.state

    def window_mean(self) -> float:
        """Mean changed fraction over the sliding window."""
        if not self._window:
            return 1.0
        return sum(self._window) / len(self._window)
