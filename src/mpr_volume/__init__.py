"""Multi-planar volume viewer core.

Parses NIfTI scans into a dense normalised intensity grid and extracts
axial, sagittal and coronal slices for interactive navigation.  Rendering,
camera control and UI chrome are left to the caller; they drive the core
through :class:`mpr_volume.viewer.VolumeSession`.
"""

from __future__ import annotations

__version__ = "0.1.0"
