"""Preprocessing module for the viewer pipeline.

Exports the display-range normalisation and the slice sampling used by the
viewer layer.
"""
from __future__ import annotations

from mpr_volume.preprocessing.normalize import (
    compute_window,
    full_range_window,
    normalize_grid,
    percentile_window,
    rescale,
)
from mpr_volume.preprocessing.slice_sampler import (
    SliceSampler,
    apply_window,
    slice_shape,
    slice_to_png,
    slice_to_uint8,
)

__all__ = [
    "SliceSampler",
    "apply_window",
    "compute_window",
    "full_range_window",
    "normalize_grid",
    "percentile_window",
    "rescale",
    "slice_shape",
    "slice_to_png",
    "slice_to_uint8",
]
