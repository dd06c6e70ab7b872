"""Immutable owner of a loaded volume.

A :class:`VolumeStore` holds the parsed header and the normalised grid.  The
grid is read-only once the normalisation pass has run; the only way to
change its values is :meth:`VolumeStore.renormalize`, which rebuilds the
whole grid from the raw decoded data.
"""
from __future__ import annotations

import logging

import numpy as np

from mpr_volume.domain.models import (
    IntensityWindow,
    NormalizationSettings,
    PlaneAxis,
    VolumeHeader,
)
from mpr_volume.preprocessing.normalize import compute_window, rescale

logger = logging.getLogger(__name__)


class VolumeStore:
    """Header plus normalised ``[x, y, z]`` intensity grid.

    Use :meth:`from_raw` rather than the constructor; it runs the
    normalisation pass.
    """

    def __init__(
        self,
        header: VolumeHeader,
        raw: np.ndarray,
        grid: np.ndarray,
        window: IntensityWindow,
        settings: NormalizationSettings,
    ) -> None:
        if tuple(grid.shape) != header.dimensions:
            raise ValueError(
                f"Grid shape {grid.shape} does not match header dimensions "
                f"{header.dimensions}."
            )
        grid.flags.writeable = False
        self._header = header
        self._raw = raw
        self._grid = grid
        self._window = window
        self._settings = settings

    # -- construction ------------------------------------------------------

    @classmethod
    def from_raw(
        cls,
        header: VolumeHeader,
        raw: np.ndarray,
        settings: NormalizationSettings | None = None,
    ) -> VolumeStore:
        """Normalise *raw* once and wrap it with *header*.

        Parameters
        ----------
        header:
            Validated header; ``header.dimensions`` must equal ``raw.shape``.
        raw:
            Decoded, un-normalised grid.  A read-only copy is kept for
            renormalisation.
        settings:
            Normalisation mode; defaults to the 2/98 percentile window.
        """
        settings = settings or NormalizationSettings()
        raw = np.array(raw, dtype=np.float32, copy=True)
        raw.flags.writeable = False
        window = compute_window(raw, settings)
        grid = rescale(raw, window)
        logger.info(
            "Normalised %s grid with %s window [%g, %g]",
            "x".join(str(n) for n in header.dimensions),
            "percentile" if settings.use_percentile else "full-range",
            window.lower, window.upper,
        )
        return cls(header, raw, grid, window, settings)

    @classmethod
    def from_array(
        cls,
        data: np.ndarray,
        spacing: tuple[float, float, float] = (1.0, 1.0, 1.0),
        settings: NormalizationSettings | None = None,
    ) -> VolumeStore:
        """Build a store directly from an in-memory ``[x, y, z]`` array."""
        data = np.asarray(data, dtype=np.float32)
        if data.ndim != 3:
            raise ValueError(f"Expected a 3-D array, got shape {data.shape}.")
        header = VolumeHeader(
            dimensions=tuple(max(1, int(n)) for n in data.shape),  # type: ignore[arg-type]
            spacing=spacing,
        )
        return cls.from_raw(header, data, settings)

    # -- accessors ---------------------------------------------------------

    @property
    def header(self) -> VolumeHeader:
        return self._header

    @property
    def dimensions(self) -> tuple[int, int, int]:
        return self._header.dimensions

    @property
    def spacing(self) -> tuple[float, float, float]:
        return self._header.spacing

    @property
    def physical_extent(self) -> tuple[float, float, float]:
        return self._header.physical_extent

    @property
    def window(self) -> IntensityWindow:
        return self._window

    @property
    def settings(self) -> NormalizationSettings:
        return self._settings

    @property
    def grid(self) -> np.ndarray:
        """Read-only view of the normalised grid."""
        return self._grid

    def slice_count(self, axis: PlaneAxis) -> int:
        return self.dimensions[PlaneAxis.parse(axis).value]

    def max_index(self, axis: PlaneAxis) -> int:
        return self.slice_count(axis) - 1

    def get_voxel_value(self, x: int, y: int, z: int) -> float:
        """Normalised intensity at ``(x, y, z)``; coordinates are clamped."""
        dx, dy, dz = self.dimensions
        xi = min(max(int(x), 0), dx - 1)
        yi = min(max(int(y), 0), dy - 1)
        zi = min(max(int(z), 0), dz - 1)
        return float(self._grid[xi, yi, zi])

    # -- renormalisation ---------------------------------------------------

    def renormalize(self, settings: NormalizationSettings | None = None) -> IntensityWindow:
        """Recompute the window and replace the grid wholesale.

        Returns
        -------
        IntensityWindow
            The new window.
        """
        settings = settings or self._settings
        window = compute_window(self._raw, settings)
        grid = rescale(self._raw, window)
        grid.flags.writeable = False
        self._grid = grid
        self._window = window
        self._settings = settings
        logger.info("Renormalised grid to window [%g, %g]", window.lower, window.upper)
        return window
