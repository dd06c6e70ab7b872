"""Orthogonal slice extraction with a level/width contrast window.

Buffer layout is fixed per axis (``rows x columns``):

====  =======  =========  ======================
axis  columns  rows       ``buffer[r, c]``
====  =======  =========  ======================
X     dimZ     dimY       ``grid[index, r, c]``
Y     dimX     dimZ       ``grid[c, index, r]``
Z     dimX     dimY       ``grid[c, r, index]``
====  =======  =========  ======================

Row 0 is the bottom row of the displayed image.  The contrast window is
applied after sampling and is independent of the load-time normalisation.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import numpy as np

from mpr_volume.domain.models import ContrastWindow, PlaneAxis

try:
    from PIL import Image as _PILImage  # type: ignore[import-untyped]
except ImportError as _exc:  # pragma: no cover
    raise ImportError(
        "Pillow is required for slice export. Install it with: "
        "pip install 'Pillow>=10.0'"
    ) from _exc

logger = logging.getLogger(__name__)


class _GridSource(Protocol):
    @property
    def grid(self) -> np.ndarray: ...


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------


def slice_shape(dimensions: tuple[int, int, int], axis: PlaneAxis) -> tuple[int, int]:
    """Return the ``(rows, columns)`` shape of a slice buffer along *axis*."""
    dx, dy, dz = dimensions
    if axis is PlaneAxis.X:
        return dy, dz
    if axis is PlaneAxis.Y:
        return dz, dx
    return dy, dx


def extract_plane(grid: np.ndarray, axis: PlaneAxis, index: int) -> np.ndarray:
    """Return a ``(rows, columns)`` view of *grid* at *index* along *axis*.

    *index* must already be in range; no copy is made.
    """
    if axis is PlaneAxis.X:
        return grid[index, :, :]
    if axis is PlaneAxis.Y:
        return grid[:, index, :].T
    return grid[:, :, index].T


def apply_window(
    values: np.ndarray,
    window: ContrastWindow,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Apply a level/width window.

    Values at or below ``level - width/2`` map to 0, at or above
    ``level + width/2`` map to 1, linear in between.  A disabled window
    copies *values* unchanged.
    """
    if out is None:
        out = np.empty(values.shape, dtype=np.float32)
    np.copyto(out, values, casting="same_kind")
    if not window.enabled:
        return out
    out -= np.float32(window.lower)
    out /= np.float32(window.width)
    np.clip(out, 0.0, 1.0, out=out)
    return out


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------


class SliceSampler:
    """Extracts windowed 2-D slices from a normalised voxel grid.

    Parameters
    ----------
    source:
        Object exposing the ``[x, y, z]`` grid as ``.grid`` (normally a
        :class:`mpr_volume.viewer.store.VolumeStore`).
    window:
        Initial contrast window.
    """

    def __init__(self, source: _GridSource, window: ContrastWindow | None = None) -> None:
        self._source = source
        self.window = window or ContrastWindow()

    @property
    def dimensions(self) -> tuple[int, int, int]:
        return tuple(int(n) for n in self._source.grid.shape)  # type: ignore[return-value]

    def max_index(self, axis: PlaneAxis) -> int:
        return self.dimensions[axis.value] - 1

    def clamp_index(self, axis: PlaneAxis, index: int) -> int:
        return min(max(int(index), 0), self.max_index(axis))

    def shape(self, axis: PlaneAxis) -> tuple[int, int]:
        return slice_shape(self.dimensions, axis)

    def allocate(self, axis: PlaneAxis) -> np.ndarray:
        """Return a zeroed buffer with the slice shape for *axis*."""
        return np.zeros(self.shape(axis), dtype=np.float32)

    def sample(
        self,
        axis: PlaneAxis,
        index: int,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        """Sample the slice at *index* (clamped) along *axis*.

        Parameters
        ----------
        axis:
            Slice axis.
        index:
            Slice index; clamped into ``[0, max_index(axis)]``.
        out:
            Optional float32 buffer of shape :meth:`shape` that receives
            the result in place.

        Returns
        -------
        np.ndarray
            The windowed slice (``out`` when given).

        Raises
        ------
        ValueError
            If *out* has the wrong shape.
        """
        axis = PlaneAxis.parse(axis)
        index = self.clamp_index(axis, index)
        if out is not None and out.shape != self.shape(axis):
            raise ValueError(
                f"Output buffer shape {out.shape} does not match "
                f"{axis.anatomical_name} slice shape {self.shape(axis)}."
            )
        plane = extract_plane(self._source.grid, axis, index)
        return apply_window(plane, self.window, out=out)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def slice_to_uint8(buffer: np.ndarray) -> np.ndarray:
    """Convert a ``[0, 1]`` slice buffer to an 8-bit image, top row first.

    Parameters
    ----------
    buffer:
        2-D float array with row 0 at the bottom.

    Returns
    -------
    np.ndarray
        Uint8 array ready for image libraries (row 0 at the top).
    """
    scaled = np.clip(np.asarray(buffer, dtype=np.float64), 0.0, 1.0) * 255.0
    return np.flipud(np.rint(scaled).astype(np.uint8))


def slice_to_png(buffer: np.ndarray, path: str | Path) -> Path:
    """Write a slice buffer as an 8-bit grayscale PNG.

    Returns
    -------
    Path
        The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    image = _PILImage.fromarray(np.ascontiguousarray(slice_to_uint8(buffer)))
    image.save(path, format="PNG")
    logger.info("Wrote %dx%d slice to %s", image.width, image.height, path)
    return path
