"""Display-range intensity normalisation.

Two ways of choosing the :class:`IntensityWindow` that maps raw intensities
into ``[0, 1]``:

- **Full range**: the minimum and maximum of the grid.
- **Percentile**: the values at ``floor(N * p / 100)`` of a sorted copy of
  the grid, which keeps a few outliers from flattening the contrast
  (defaults 2 / 98).

:func:`rescale` then applies ``clamp01((v - lower) / width)``.
"""
from __future__ import annotations

import logging

import numpy as np

from mpr_volume.domain.models import IntensityWindow, NormalizationSettings

logger = logging.getLogger(__name__)

# Guards the division in rescale(); IntensityWindow already widens collapsed
# ranges, so this only matters for windows built by hand.
_EPSILON = 1e-8


# ---------------------------------------------------------------------------
# Window selection
# ---------------------------------------------------------------------------


def full_range_window(grid: np.ndarray) -> IntensityWindow:
    """Return the ``[min, max]`` window of *grid* (one pass)."""
    if grid.size == 0:
        return IntensityWindow(0.0, 1.0)
    return IntensityWindow(float(grid.min()), float(grid.max()))


def percentile_window(
    grid: np.ndarray,
    lower: float = 2.0,
    upper: float = 98.0,
) -> IntensityWindow:
    """Return the window between two percentiles of *grid*.

    The values are copied and sorted (``O(n log n)``); the bounds are the
    sorted values at indices ``floor(N * lower / 100)`` and
    ``floor(N * upper / 100)``, each clamped into ``[0, N - 1]``.  With
    ``lower=0`` and ``upper=100`` this is the full range.

    Parameters
    ----------
    grid:
        Intensity array of any shape.
    lower:
        Lower percentile in ``[0, 100]``.
    upper:
        Upper percentile in ``[0, 100]``.

    Raises
    ------
    ValueError
        If the percentiles are out of range or ``lower > upper``.
    """
    settings = NormalizationSettings(
        use_percentile=True, lower_percentile=lower, upper_percentile=upper,
    )
    n = int(grid.size)
    if n == 0:
        return IntensityWindow(0.0, 1.0)

    ordered = np.sort(grid, axis=None)
    lo_idx = _percentile_index(n, settings.lower_percentile)
    hi_idx = _percentile_index(n, settings.upper_percentile)
    window = IntensityWindow(float(ordered[lo_idx]), float(ordered[hi_idx]))
    logger.info(
        "Percentile range [%.1f%%, %.1f%%]: [%g, %g]",
        lower, upper, window.lower, window.upper,
    )
    return window


def compute_window(
    grid: np.ndarray,
    settings: NormalizationSettings | None = None,
) -> IntensityWindow:
    """Select the display window for *grid* according to *settings*."""
    settings = settings or NormalizationSettings()
    if settings.use_percentile:
        return percentile_window(
            grid, settings.lower_percentile, settings.upper_percentile,
        )
    return full_range_window(grid)


# ---------------------------------------------------------------------------
# Rescaling
# ---------------------------------------------------------------------------


def rescale(
    grid: np.ndarray,
    window: IntensityWindow,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Map *grid* through *window* into ``[0, 1]`` float32.

    Parameters
    ----------
    grid:
        Raw intensities.
    window:
        Display bounds; values at or below ``lower`` become 0, at or above
        ``upper`` become 1.
    out:
        Optional float32 destination of the same shape.  Passing *grid*
        itself rescales in place.

    Returns
    -------
    np.ndarray
        The rescaled array (``out`` when given).
    """
    if out is None:
        out = np.array(grid, dtype=np.float32, copy=True)
    elif out is not grid:
        np.copyto(out, grid, casting="same_kind")

    out -= np.float32(window.lower)
    out /= np.float32(max(window.width, _EPSILON))
    np.clip(out, 0.0, 1.0, out=out)
    return out


def normalize_grid(
    grid: np.ndarray,
    settings: NormalizationSettings | None = None,
) -> tuple[np.ndarray, IntensityWindow]:
    """Compute the window for *grid* and return a rescaled copy with it."""
    window = compute_window(grid, settings)
    return rescale(grid, window), window


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _percentile_index(n: int, percentile: float) -> int:
    idx = int(np.floor(n * percentile / 100.0))
    return min(max(idx, 0), n - 1)
