"""Domain layer -- models, protocols, and events.

Re-exports all public domain types for convenient access::

    from mpr_volume.domain import PlaneAxis, VolumeHeader, IntensityWindow
"""

from __future__ import annotations

from mpr_volume.domain.events import (
    PLANE_RESAMPLED,
    VOLUME_LOAD_FAILED,
    VOLUME_LOADED,
    VOLUME_RENORMALIZED,
    WINDOW_CHANGED,
    Event,
    EventBus,
)
from mpr_volume.domain.models import (
    AppConfig,
    ContrastWindow,
    DragSession,
    ElementEncoding,
    ExtractionSettings,
    FormatError,
    IntensityWindow,
    InteractionSettings,
    LengthMismatch,
    NormalizationSettings,
    PlaneAxis,
    PlaneState,
    UnsupportedEncoding,
    ViewState,
    VolumeHeader,
)
from mpr_volume.domain.protocols import PlaneTarget, ScreenProjection

__all__ = [
    # Models
    "AppConfig",
    "ContrastWindow",
    "DragSession",
    "ElementEncoding",
    "ExtractionSettings",
    "IntensityWindow",
    "InteractionSettings",
    "NormalizationSettings",
    "PlaneAxis",
    "PlaneState",
    "ViewState",
    "VolumeHeader",
    # Errors / warnings
    "FormatError",
    "LengthMismatch",
    "UnsupportedEncoding",
    # Event constants
    "PLANE_RESAMPLED",
    "VOLUME_LOADED",
    "VOLUME_LOAD_FAILED",
    "VOLUME_RENORMALIZED",
    "WINDOW_CHANGED",
    # Events
    "Event",
    "EventBus",
    # Protocols
    "PlaneTarget",
    "ScreenProjection",
]
