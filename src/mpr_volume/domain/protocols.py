"""Protocol interfaces for collaborators of the viewer core.

Using :class:`typing.Protocol` enables structural subtyping -- camera and
renderer implementations do not need to inherit from these classes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from mpr_volume.domain.models import PlaneAxis


@runtime_checkable
class ScreenProjection(Protocol):
    """Maps world-space points to screen-space pixel coordinates."""

    def world_to_screen(self, point: np.ndarray) -> np.ndarray:
        """Project a world-space point onto the screen.

        Parameters
        ----------
        point:
            Array of shape ``(3,)`` in world coordinates.

        Returns
        -------
        np.ndarray
            Array of shape ``(2,)`` with the pixel ``(x, y)`` position.
        """
        ...


@runtime_checkable
class PlaneTarget(Protocol):
    """Receives normalized-position updates for one slice axis.

    :class:`mpr_volume.viewer.coordinator.MultiPlaneCoordinator` satisfies
    this protocol; interaction controllers only depend on it.
    """

    def update_plane_position(self, axis: PlaneAxis, normalized_position: float) -> None:
        ...

    def normalized_position(self, axis: PlaneAxis) -> float:
        ...

    def slice_count(self, axis: PlaneAxis) -> int:
        ...

    def local_offset(self, axis: PlaneAxis) -> float:
        ...
