"""Payload decoding into a dense ``(x, y, z)`` intensity grid.

The element encoding selects one numpy dtype per load and the whole payload
is decoded with a single vectorised ``np.frombuffer`` call.  Payloads that
are shorter or longer than the header declares are padded with zeros or
truncated.  The designated depth axis is reversed once so that the grid
follows the display convention rather than the file's slice order.
"""
from __future__ import annotations

import logging
import warnings

import numpy as np

from mpr_volume.domain.models import LengthMismatch, VolumeHeader

logger = logging.getLogger(__name__)


def decode_payload(header: VolumeHeader, payload: bytes) -> np.ndarray:
    """Decode *payload* into a flat float32 array of ``header.voxel_count`` values.

    Parameters
    ----------
    header:
        Parsed header; its ``encoding`` and ``byte_order`` select the dtype.
    payload:
        Raw voxel bytes starting at the first voxel.

    Returns
    -------
    np.ndarray
        Flat float32 array in file order (x fastest).  Missing trailing
        elements are zero; surplus elements are dropped.
    """
    dtype = header.encoding.dtype.newbyteorder(header.byte_order)
    expected = header.voxel_count
    available = len(payload) // dtype.itemsize

    if available != expected:
        direction = "shorter" if available < expected else "longer"
        message = (
            f"Payload is {direction} than declared: {available} elements "
            f"for {expected} voxels; "
            + ("missing voxels are filled with 0." if available < expected
               else "extra values are ignored.")
        )
        logger.warning(message)
        warnings.warn(message, LengthMismatch, stacklevel=2)

    count = min(available, expected)
    flat = np.zeros(expected, dtype=np.float32)
    if count == 0:
        return flat

    decoded = np.frombuffer(payload, dtype=dtype, count=count)
    if header.has_scaling:
        inter = header.scale_inter if np.isfinite(header.scale_inter) else 0.0
        flat[:count] = decoded.astype(np.float64) * header.scale_slope + inter
    else:
        flat[:count] = decoded
    return flat


def extract_voxels(
    header: VolumeHeader,
    payload: bytes,
    *,
    flip_axis: int | None = 2,
) -> np.ndarray:
    """Decode *payload* and lay it out as a ``(dimX, dimY, dimZ)`` grid.

    Parameters
    ----------
    header:
        Parsed header describing dimensions and element encoding.
    payload:
        Raw voxel bytes.
    flip_axis:
        Grid axis whose traversal order is reversed (``2`` = depth).
        ``None`` keeps the file order.

    Returns
    -------
    np.ndarray
        C-contiguous float32 grid indexed ``[x, y, z]`` with NaN and
        infinite values replaced by 0.
    """
    flat = decode_payload(header, payload)
    grid = flat.reshape(header.dimensions, order="F")
    if flip_axis is not None:
        grid = np.flip(grid, axis=flip_axis)
    grid = np.ascontiguousarray(grid, dtype=np.float32)

    bad = ~np.isfinite(grid)
    if bad.any():
        logger.info("Replacing %d non-finite voxel values with 0.", int(bad.sum()))
        grid[bad] = 0.0
    return grid
