"""Pointer-drag and key-repeat control of a single slice plane.

A controller is bound to one plane.  The axis it drives is decided once, from
the plane's facing direction in the volume's local frame.  Both input modes
end in a normalised-position update on a :class:`PlaneTarget` (normally the
:class:`~mpr_volume.viewer.coordinator.MultiPlaneCoordinator`).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from mpr_volume.domain.models import DragSession, InteractionSettings, PlaneAxis
from mpr_volume.domain.protocols import PlaneTarget, ScreenProjection

logger = logging.getLogger(__name__)

# Half extent of the unit display cube.
_HALF = 0.5
# Screen directions shorter than this (pixels) cannot be dragged along.
_MIN_SCREEN_DIRECTION = 1e-3


def determine_slice_axis(local_forward: Sequence[float]) -> PlaneAxis:
    """Return the axis of the largest-magnitude component of *local_forward*.

    X wins only when strictly largest, then Y; every tie falls to Z.
    """
    ax, ay, az = (abs(float(c)) for c in local_forward)
    if ax > ay and ax > az:
        return PlaneAxis.X
    if ay > ax and ay > az:
        return PlaneAxis.Y
    return PlaneAxis.Z


@dataclass(frozen=True)
class ViewProjection:
    """Screen projection from a 4x4 view-projection matrix.

    Normalised device coordinates ``[-1, 1]`` map to pixels with the origin
    at the bottom-left corner of a ``viewport`` of ``(width, height)``.
    """

    matrix: np.ndarray = field(default_factory=lambda: np.eye(4))
    viewport: tuple[float, float] = (1.0, 1.0)

    def world_to_screen(self, point: np.ndarray) -> np.ndarray:
        homogeneous = np.append(np.asarray(point, dtype=np.float64)[:3], 1.0)
        clip = np.asarray(self.matrix, dtype=np.float64) @ homogeneous
        w = clip[3] if abs(clip[3]) > 1e-12 else 1e-12
        ndc = clip[:2] / w
        width, height = self.viewport
        return np.array([(ndc[0] + 1.0) * 0.5 * width, (ndc[1] + 1.0) * 0.5 * height])


class PlaneInteractionController:
    """Turns keyboard and pointer input into plane position updates.

    Parameters
    ----------
    target:
        Receiver of normalised positions.
    local_forward:
        The plane's outward-facing direction in the volume's local frame.
    camera:
        Screen projection used for pointer drags.  Without one, drags are
        ignored.
    volume_to_world:
        4x4 transform from the volume's local frame (the unit display cube)
        to world space.  Defaults to identity.
    settings:
        Speeds, sensitivity and the allowed position sub-range.
    """

    def __init__(
        self,
        target: PlaneTarget,
        local_forward: Sequence[float],
        *,
        camera: ScreenProjection | None = None,
        volume_to_world: np.ndarray | None = None,
        settings: InteractionSettings | None = None,
    ) -> None:
        self._target = target
        self._facing = np.asarray(local_forward, dtype=np.float64)
        self.camera = camera
        self.volume_to_world = (
            np.eye(4) if volume_to_world is None
            else np.asarray(volume_to_world, dtype=np.float64)
        )
        self.settings = settings or InteractionSettings()
        self.axis = determine_slice_axis(self._facing)
        self._drag: DragSession | None = None
        logger.debug("Plane facing %s controls axis %s", self._facing.tolist(), self.axis.name)

    # -- state -------------------------------------------------------------

    @property
    def is_dragging(self) -> bool:
        return self._drag is not None

    @property
    def drag_session(self) -> DragSession | None:
        return self._drag

    def normalized_position(self) -> float:
        return self._target.normalized_position(self.axis)

    # -- programmatic ------------------------------------------------------

    def set_normalized_position(self, position: float) -> float:
        """Clamp *position* to the allowed sub-range and forward it."""
        position = min(
            max(float(position), self.settings.min_position),
            self.settings.max_position,
        )
        self._target.update_plane_position(self.axis, position)
        return position

    def jump_to_slice(self, index: int) -> float:
        count = self._target.slice_count(self.axis)
        return self.set_normalized_position(index / max(1, count - 1))

    # -- keyboard ----------------------------------------------------------

    def tick(self, dt: float, forward: bool = False, backward: bool = False) -> bool:
        """Advance one frame of key-repeat stepping.

        Parameters
        ----------
        dt:
            Seconds since the previous tick.
        forward, backward:
            Whether the forward / backward key is held.  Forward wins when
            both are.

        Returns
        -------
        bool
            Whether a position update was issued.
        """
        if not self.settings.allow_keyboard:
            return False
        if forward:
            movement = self.settings.keyboard_speed * dt
        elif backward:
            movement = -self.settings.keyboard_speed * dt
        else:
            return False
        if movement == 0.0:
            return False
        self.set_normalized_position(self.normalized_position() + movement)
        return True

    # -- pointer -----------------------------------------------------------

    def press(self, pointer: Sequence[float]) -> bool:
        """Start a drag at screen position *pointer*."""
        if not self.settings.allow_drag or self.camera is None:
            return False
        self._drag = DragSession(
            start_pointer=(float(pointer[0]), float(pointer[1])),
            start_local=self._target.local_offset(self.axis),
        )
        return True

    def drag(self, pointer: Sequence[float]) -> float | None:
        """Move the plane for the current pointer position.

        Returns
        -------
        float | None
            The forwarded normalised position, or ``None`` outside a drag.
        """
        session = self._drag
        if session is None or self.camera is None:
            return None

        delta = np.array(
            [float(pointer[0]) - session.start_pointer[0],
             float(pointer[1]) - session.start_pointer[1]]
        )
        screen_delta = self._screen_delta(delta)
        local = session.start_local + screen_delta * self.settings.drag_sensitivity
        local = min(max(local, -_HALF), _HALF)
        return self.set_normalized_position(local + _HALF)

    def release(self) -> None:
        self._drag = None

    # -- internals ---------------------------------------------------------

    def _screen_delta(self, pointer_delta: np.ndarray) -> float:
        """Project *pointer_delta* onto the plane's facing direction on screen."""
        local_point = np.zeros(3)
        local_point[self.axis.value] = self._target.local_offset(self.axis)
        world_point = (self.volume_to_world @ np.append(local_point, 1.0))[:3]

        world_dir = self.volume_to_world[:3, :3] @ self._facing
        norm = float(np.linalg.norm(world_dir))
        if norm == 0.0:
            return 0.0
        world_dir /= norm

        screen_dir = (
            self.camera.world_to_screen(world_point + world_dir)
            - self.camera.world_to_screen(world_point)
        )[:2]
        length = float(np.linalg.norm(screen_dir))
        if length < _MIN_SCREEN_DIRECTION:
            return 0.0
        return float(np.dot(pointer_delta, screen_dir / length))
