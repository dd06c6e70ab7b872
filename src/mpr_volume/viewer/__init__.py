"""Viewer layer -- volume store, plane coordination and input handling.

Public API::

    from mpr_volume.viewer import VolumeSession

    session = VolumeSession()
    session.load("scan.nii.gz")
"""
from __future__ import annotations

from mpr_volume.viewer.coordinator import MultiPlaneCoordinator
from mpr_volume.viewer.interaction import (
    PlaneInteractionController,
    ViewProjection,
    determine_slice_axis,
)
from mpr_volume.viewer.session import VolumeSession
from mpr_volume.viewer.store import VolumeStore

__all__ = [
    "MultiPlaneCoordinator",
    "PlaneInteractionController",
    "ViewProjection",
    "VolumeSession",
    "VolumeStore",
    "determine_slice_axis",
]
