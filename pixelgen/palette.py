"""Palette quantization of superpixel colors by weighted k-means."""
import logging

import numpy as np
from sklearn.cluster import KMeans
from sklearn.decomposition import PCA

from pixelgen.color_metric import distance_matrix, to_rgb8
from pixelgen.types import Palette, ConfigurationError

logger = logging.getLogger(__name__)


def _seed_pool(weights: np.ndarray, k: int) -> np.ndarray:
    """Indices eligible as seeds: weighted colors, unless fewer than k exist."""
    positive = np.flatnonzero(weights > 0)
    if len(positive) >= k:
        return positive
    return np.arange(len(weights))


def seed_farthest(colors: np.ndarray, weights: np.ndarray, k: int) -> np.ndarray:
    """
    Deterministic farthest-point seeding.

    The first center is the heaviest color; each next center is the color
    farthest from all chosen ones. Colors with zero weight are only picked
    once every weighted color is taken. Ties go to the lowest index.

    Args:
        colors: (M, 3) Lab colors
        weights: (M,) weights
        k: Number of centers (k <= M)

    Returns:
        (k, 3) initial centers
    """
    positive = weights > 0
    n_positive = int(np.count_nonzero(positive))

    chosen = [int(np.argmax(weights))]
    nearest = distance_matrix(colors, colors[chosen])[:, 0]
    for _ in range(1, k):
        candidates = nearest.copy()
        if len(chosen) < n_positive:
            candidates[~positive] = -1.0
        candidates[chosen] = -1.0
        nxt = int(np.argmax(candidates))
        chosen.append(nxt)
        nearest = np.minimum(nearest, distance_matrix(colors, colors[[nxt]])[:, 0])
    return colors[chosen].copy()


def seed_variance(colors: np.ndarray, weights: np.ndarray, k: int,
                  random_state: int = 0) -> np.ndarray:
    """
    Variance-based seeding along the first principal axis.

    Weighted colors are sorted by their projection on the first principal
    component and split into k equally sized groups; each seed is its
    group's weighted mean.

    Args:
        colors: (M, 3) Lab colors
        weights: (M,) weights
        k: Number of centers (k <= M)
        random_state: Seed handed to the PCA solver

    Returns:
        (k, 3) initial centers
    """
    pool = _seed_pool(weights, k)
    colors, weights = colors[pool], weights[pool]

    pca = PCA(n_components=1, svd_solver="full", random_state=random_state)
    projection = pca.fit_transform(colors)[:, 0]
    order = np.argsort(projection, kind="stable")

    centers = np.empty((k, 3))
    for i, group in enumerate(np.array_split(order, k)):
        w = weights[group]
        if w.sum() > 0:
            centers[i] = (colors[group] * w[:, None]).sum(axis=0) / w.sum()
        else:
            centers[i] = colors[group].mean(axis=0)
    return centers


def quantize_palette(
    colors: np.ndarray,
    weights: np.ndarray,
    n_colors: int,
    seeding: str = "farthest",
    max_iter: int = 100,
    tolerance: float = 1e-4,
    random_state: int = 0,
) -> Palette:
    """
    Cluster superpixel colors into a palette.

    Runs a single weighted k-means in Lab space from deterministic seeds.
    A run that uses every one of ``max_iter`` iterations is reported as
    not converged; its final partition is still returned, since Lloyd
    iterations never increase the inertia.

    When ``n_colors >= M`` every superpixel keeps its own color, so the
    palette has ``min(n_colors, M)`` entries.

    Args:
        colors: (M, 3) superpixel Lab colors
        weights: (M,) member counts
        n_colors: Requested palette size C
        seeding: "farthest" or "variance"
        max_iter: Iteration cap
        tolerance: Relative center movement threshold (KMeans ``tol``)
        random_state: Seed for the PCA solver and KMeans

    Returns:
        Palette

    Raises:
        ConfigurationError: If n_colors is not positive or seeding is unknown
    """
    if n_colors <= 0:
        raise ConfigurationError(f"n_colors must be positive, got {n_colors}")

    colors = np.asarray(colors, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)
    m = len(colors)
    if weights.sum() <= 0:
        weights = np.ones(m)

    if n_colors >= m:
        logger.info(f"Palette: {n_colors} colors requested for {m} superpixels, keeping all")
        return Palette(
            colors_lab=colors.copy(),
            colors_rgb=to_rgb8(colors),
            assignment=np.arange(m, dtype=np.int64),
            iterations=0,
            converged=True,
            inertia=0.0,
        )

    logger.info(f"Palette: clustering {m} superpixels into {n_colors} colors "
                f"(seeding={seeding}, seed={random_state})")
    if seeding == "farthest":
        seeds = seed_farthest(colors, weights, n_colors)
    elif seeding == "variance":
        seeds = seed_variance(colors, weights, n_colors, random_state)
    else:
        raise ConfigurationError(f"Unknown palette seeding: {seeding!r}")

    kmeans = KMeans(
        n_clusters=n_colors,
        init=seeds,
        n_init=1,
        max_iter=max_iter,
        tol=tolerance,
        random_state=random_state,
    )
    kmeans.fit(colors, sample_weight=weights)

    iterations = int(kmeans.n_iter_)
    converged = iterations < max_iter
    inertia = float(kmeans.inertia_)
    if not converged:
        logger.warning(
            f"Palette clustering did not converge in {max_iter} iterations, "
            "using the last partition"
        )

    logger.info(f"Palette: {iterations} iteration(s), inertia {inertia:.2f}")
    centers = kmeans.cluster_centers_
    return Palette(
        colors_lab=centers,
        colors_rgb=to_rgb8(centers),
        assignment=kmeans.labels_.astype(np.int64),
        iterations=iterations,
        converged=converged,
        inertia=inertia,
    )
