"""Public volume API consumed by rendering and UI collaborators.

:class:`VolumeSession` ties the pipeline together::

    session = VolumeSession()
    if session.load("scan.nii.gz"):
        session.set_normalized_position("axial", 0.3)
        buffer = session.plane("axial").buffer

Loading is synchronous.  :meth:`VolumeSession.load_async` runs the same
load on a worker thread and returns a :class:`concurrent.futures.Future`
that resolves to the load result, so callers can wait on completion
instead of polling :attr:`VolumeSession.is_loaded`.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

import numpy as np

from mpr_volume.config.settings import get_typed_config
from mpr_volume.domain.events import (
    VOLUME_LOAD_FAILED,
    VOLUME_LOADED,
    VOLUME_RENORMALIZED,
    EventBus,
)
from mpr_volume.domain.models import (
    AppConfig,
    ContrastWindow,
    FormatError,
    IntensityWindow,
    NormalizationSettings,
    PlaneAxis,
    PlaneState,
    ViewState,
)
from mpr_volume.domain.protocols import ScreenProjection
from mpr_volume.ingestion.nifti_loader import load_raw_volume
from mpr_volume.viewer.coordinator import MultiPlaneCoordinator
from mpr_volume.viewer.interaction import PlaneInteractionController
from mpr_volume.viewer.store import VolumeStore

logger = logging.getLogger(__name__)


class VolumeSession:
    """Loaded volume plus its three slice planes.

    Parameters
    ----------
    config:
        Configuration; defaults to :func:`mpr_volume.config.get_typed_config`.
    bus:
        Event bus for ``volume.*``, ``plane.*`` and ``window.*`` events.
        A private bus is created when omitted.
    """

    def __init__(self, config: AppConfig | None = None, bus: EventBus | None = None) -> None:
        self.config = config or get_typed_config()
        self.bus = bus or EventBus()
        self.normalization = self.config.normalization()
        self.extraction = self.config.extraction()
        self.interaction = self.config.interaction()
        self._initial_window = self.config.window()
        self._lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None
        self._store: VolumeStore | None = None
        self._coordinator: MultiPlaneCoordinator | None = None
        self._source_path = ""

    # -- loading -----------------------------------------------------------

    def load(self, path: str | Path) -> bool:
        """Load a scan; returns whether it succeeded.

        On failure the session is left unloaded (any previously loaded
        volume is released) and the error is logged.
        """
        try:
            header, raw = load_raw_volume(path, flip_axis=self.extraction.flip_axis)
            store = VolumeStore.from_raw(header, raw, self.normalization)
        except (FormatError, OSError, ValueError) as exc:
            logger.error("Failed to load volume %s: %s", path, exc)
            with self._lock:
                self._store = None
                self._coordinator = None
                self._source_path = ""
            self.bus.publish(VOLUME_LOAD_FAILED, {"path": str(path), "error": str(exc)})
            return False

        # Window changes made while decoding apply to the new volume.
        with self._lock:
            coordinator = MultiPlaneCoordinator(
                store, window=self._current_window(), bus=self.bus,
            )
            self._store = store
            self._coordinator = coordinator
            self._source_path = str(path)
        logger.info(
            "Loaded %s: dims=%s spacing=%s window=[%g, %g]",
            path, store.dimensions, store.spacing, store.window.lower, store.window.upper,
        )
        self.bus.publish(
            VOLUME_LOADED,
            {
                "path": str(path),
                "dimensions": store.dimensions,
                "spacing": store.spacing,
            },
        )
        return True

    def load_async(self, path: str | Path) -> Future[bool]:
        """Run :meth:`load` on a worker thread.

        Decoding runs on the worker; the contrast window in effect when the
        volume is published is the one applied to it.  Events for this load
        (``plane.resampled``, ``volume.loaded``) are delivered on the worker
        thread, so handlers that touch render state should hand off to the
        thread that owns it.

        Returns
        -------
        Future[bool]
            Resolves to the load result once the volume is published.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="volume-load")
        return self._executor.submit(self.load, path)

    def close(self) -> None:
        """Release the worker thread, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> VolumeSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- state -------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self._store is not None

    @property
    def source_path(self) -> str:
        return self._source_path

    @property
    def store(self) -> VolumeStore:
        return self._require()[0]

    @property
    def coordinator(self) -> MultiPlaneCoordinator:
        return self._require()[1]

    @property
    def dimensions(self) -> tuple[int, int, int]:
        return self.store.dimensions

    @property
    def voxel_spacing(self) -> tuple[float, float, float]:
        return self.store.spacing

    @property
    def intensity_window(self) -> IntensityWindow:
        return self.store.window

    @property
    def window(self) -> ContrastWindow:
        return self.coordinator.window

    # -- queries -----------------------------------------------------------

    def get_voxel_value(self, x: int, y: int, z: int) -> float:
        return self.store.get_voxel_value(x, y, z)

    def get_slice_count(self, axis: PlaneAxis | str) -> int:
        return self.store.slice_count(PlaneAxis.parse(axis))

    def get_slice_buffer(self, axis: PlaneAxis | str, index: int) -> np.ndarray:
        """Return a new windowed buffer for slice *index* along *axis*."""
        return self.coordinator.sampler.sample(PlaneAxis.parse(axis), index)

    def plane(self, axis: PlaneAxis | str) -> PlaneState:
        return self.coordinator.plane(axis)

    # -- commands ----------------------------------------------------------

    def set_normalized_position(self, axis: PlaneAxis | str, position: float) -> bool:
        return self.coordinator.update_plane_position(PlaneAxis.parse(axis), position)

    def set_slice_index(self, axis: PlaneAxis | str, index: int) -> bool:
        return self.coordinator.set_slice_index(axis, index)

    def set_window(self, level: float, width: float) -> ContrastWindow:
        with self._lock:
            return self.coordinator.update_window_settings(level, width)

    def set_window_enabled(self, enabled: bool) -> ContrastWindow:
        with self._lock:
            return self.coordinator.set_window_enabled(enabled)

    def renormalize(self, settings: NormalizationSettings | None = None) -> IntensityWindow:
        """Recompute the display range and resample all planes."""
        store, coordinator = self._require()
        if settings is not None:
            self.normalization = settings
        window = store.renormalize(self.normalization)
        coordinator.refresh()
        self.bus.publish(
            VOLUME_RENORMALIZED, {"lower": window.lower, "upper": window.upper},
        )
        return window

    def controller_for(
        self,
        local_forward: Sequence[float],
        *,
        camera: ScreenProjection | None = None,
        volume_to_world: np.ndarray | None = None,
    ) -> PlaneInteractionController:
        """Create an interaction controller for a plane facing *local_forward*."""
        return PlaneInteractionController(
            self.coordinator,
            local_forward,
            camera=camera,
            volume_to_world=volume_to_world,
            settings=self.interaction,
        )

    # -- view state --------------------------------------------------------

    def snapshot(self) -> ViewState:
        return self.coordinator.snapshot(source_path=self._source_path)

    def restore(self, state: ViewState) -> None:
        self.coordinator.restore(state)

    # -- internals ---------------------------------------------------------

    def _current_window(self) -> ContrastWindow:
        coordinator = self._coordinator
        return coordinator.window if coordinator is not None else self._initial_window

    def _require(self) -> tuple[VolumeStore, MultiPlaneCoordinator]:
        with self._lock:
            store, coordinator = self._store, self._coordinator
        if store is None or coordinator is None:
            raise RuntimeError("No volume loaded; check is_loaded before querying.")
        return store, coordinator
