"""Three-plane cursor management.

:class:`MultiPlaneCoordinator` owns one :class:`PlaneState` per axis and
translates between normalised position, slice index and the plane's
placement inside the display volume.  The display volume is the unit cube
``[-0.5, 0.5]^3`` centred on the origin and scaled by the physical extent
(dimensions x spacing) of the scan.

Resampling only happens when the slice index actually changes, so
continuous input that stays within one slice costs nothing.  Each plane owns
a single buffer that is overwritten in place.
"""
from __future__ import annotations

import logging
import math

import numpy as np

from mpr_volume.domain.events import PLANE_RESAMPLED, WINDOW_CHANGED, EventBus
from mpr_volume.domain.models import ContrastWindow, PlaneAxis, PlaneState, ViewState
from mpr_volume.preprocessing.slice_sampler import SliceSampler
from mpr_volume.viewer.store import VolumeStore

logger = logging.getLogger(__name__)

CENTER = 0.5


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


class MultiPlaneCoordinator:
    """Keeps the axial, sagittal and coronal planes in sync with a volume.

    Parameters
    ----------
    store:
        Loaded volume.
    window:
        Initial contrast window for the sampler.
    bus:
        Optional event bus receiving ``plane.resampled`` and
        ``window.changed`` events.
    """

    def __init__(
        self,
        store: VolumeStore,
        window: ContrastWindow | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._sampler = SliceSampler(store, window)
        self._bus = bus
        self.physical_extent: tuple[float, float, float] = store.physical_extent
        self.display_scale = np.asarray(self.physical_extent, dtype=np.float64)
        self._planes: dict[PlaneAxis, PlaneState] = {
            axis: PlaneState(axis=axis, buffer=self._sampler.allocate(axis))
            for axis in PlaneAxis
        }
        for axis in PlaneAxis:
            self.update_plane_position(axis, CENTER)
        logger.info(
            "Plane coordinator ready; display scale %s",
            tuple(round(v, 3) for v in self.physical_extent),
        )

    # -- accessors ---------------------------------------------------------

    @property
    def store(self) -> VolumeStore:
        return self._store

    @property
    def window(self) -> ContrastWindow:
        return self._sampler.window

    @property
    def sampler(self) -> SliceSampler:
        return self._sampler

    def plane(self, axis: PlaneAxis | str) -> PlaneState:
        return self._planes[PlaneAxis.parse(axis)]

    @property
    def planes(self) -> tuple[PlaneState, ...]:
        return tuple(self._planes[axis] for axis in PlaneAxis)

    def slice_count(self, axis: PlaneAxis) -> int:
        return self._store.slice_count(axis)

    def max_index(self, axis: PlaneAxis) -> int:
        return self._store.max_index(axis)

    def normalized_position(self, axis: PlaneAxis) -> float:
        return self.plane(axis).normalized_position

    def local_offset(self, axis: PlaneAxis) -> float:
        return self.plane(axis).local_offset

    def placement(self, axis: PlaneAxis | str) -> np.ndarray:
        """Local position of the plane inside the unit display cube."""
        plane = self.plane(axis)
        position = np.zeros(3, dtype=np.float64)
        position[plane.axis.value] = plane.local_offset
        return position

    def plane_world_offset(self, axis: PlaneAxis | str) -> float:
        """Offset of the plane from the volume centre in millimetres."""
        plane = self.plane(axis)
        return plane.local_offset * self.physical_extent[plane.axis.value]

    @staticmethod
    def normalized_from_local(point: np.ndarray) -> np.ndarray:
        """Map a point in the ``[-0.5, 0.5]^3`` display cube to ``[0, 1]^3``."""
        return np.asarray(point, dtype=np.float64) + CENTER

    # -- position updates --------------------------------------------------

    def update_plane_position(self, axis: PlaneAxis | str, normalized_position: float) -> bool:
        """Move a plane to *normalized_position* along its axis.

        The position is clamped to ``[0, 1]`` and converted to the slice index
        ``round(position * max_index)``.  The plane buffer is resampled only
        when that index differs from the cached one.

        Returns
        -------
        bool
            Whether the plane was resampled.
        """
        plane = self.plane(axis)
        value = float(normalized_position)
        if math.isnan(value):
            logger.debug("Ignoring NaN position for %s plane", plane.axis.anatomical_name)
            return False

        position = _clamp01(value)
        max_index = self.max_index(plane.axis)
        index = min(max(round(position * max_index), 0), max_index)

        plane.normalized_position = position
        plane.local_offset = position - CENTER

        if index == plane.current_index:
            return False
        plane.current_index = index
        self._resample(plane)
        return True

    def update_axial_plane(self, normalized_z: float) -> bool:
        return self.update_plane_position(PlaneAxis.Z, normalized_z)

    def update_sagittal_plane(self, normalized_x: float) -> bool:
        return self.update_plane_position(PlaneAxis.X, normalized_x)

    def update_coronal_plane(self, normalized_y: float) -> bool:
        return self.update_plane_position(PlaneAxis.Y, normalized_y)

    def set_slice_index(self, axis: PlaneAxis | str, index: int) -> bool:
        """Move a plane to an explicit slice index (clamped)."""
        axis = PlaneAxis.parse(axis)
        max_index = self.max_index(axis)
        index = min(max(int(index), 0), max_index)
        return self.update_plane_position(axis, index / max(1, max_index))

    def reset_to_center(self) -> None:
        for axis in PlaneAxis:
            self.update_plane_position(axis, CENTER)

    # -- window ------------------------------------------------------------

    def update_window_settings(self, level: float, width: float) -> ContrastWindow:
        """Change the contrast window and resample all three planes."""
        return self._set_window(
            ContrastWindow(level=level, width=width, enabled=self.window.enabled)
        )

    def set_window_enabled(self, enabled: bool) -> ContrastWindow:
        current = self.window
        return self._set_window(
            ContrastWindow(level=current.level, width=current.width, enabled=enabled)
        )

    def refresh(self) -> None:
        """Resample every plane at its current index."""
        for plane in self.planes:
            self._resample(plane)

    # -- view state --------------------------------------------------------

    def snapshot(self, source_path: str = "") -> ViewState:
        window = self.window
        return ViewState(
            positions={p.axis.name.lower(): p.normalized_position for p in self.planes},
            window_level=window.level,
            window_width=window.width,
            window_enabled=window.enabled,
            source_path=source_path,
        )

    def restore(self, state: ViewState) -> None:
        self._set_window(
            ContrastWindow(
                level=state.window_level,
                width=state.window_width,
                enabled=state.window_enabled,
            )
        )
        for name, position in state.positions:
            self.update_plane_position(PlaneAxis.parse(name), position)

    # -- internals ---------------------------------------------------------

    def _set_window(self, window: ContrastWindow) -> ContrastWindow:
        self._sampler.window = window
        self.refresh()
        if self._bus is not None:
            self._bus.publish(
                WINDOW_CHANGED,
                {"level": window.level, "width": window.width, "enabled": window.enabled},
            )
        return window

    def _resample(self, plane: PlaneState) -> None:
        self._sampler.sample(plane.axis, plane.current_index, out=plane.buffer)
        plane.revision += 1
        logger.debug(
            "Resampled %s plane at index %d (revision %d)",
            plane.axis.anatomical_name, plane.current_index, plane.revision,
        )
        if self._bus is not None:
            self._bus.publish(
                PLANE_RESAMPLED,
                {
                    "axis": plane.axis.name.lower(),
                    "index": plane.current_index,
                    "revision": plane.revision,
                },
            )
