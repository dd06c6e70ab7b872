"""Domain models for the multi-planar volume viewer core.

Immutable records (headers, windows, configuration) are frozen dataclasses.
Per-session records that the coordinator mutates (:class:`PlaneState`) are
plain dataclasses.  Mutable default values use ``field(default_factory=...)``.
"""

from __future__ import annotations

import enum
import json
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import yaml


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _empty_array() -> np.ndarray:
    """Return an empty 2-D float32 array."""
    return np.empty((0, 0), dtype=np.float32)


def _empty_dict() -> dict[str, Any]:
    """Return an empty dictionary."""
    return {}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# Minimum span below which an intensity range counts as collapsed.
COLLAPSED_RANGE = 1e-4


# ---------------------------------------------------------------------------
# Errors and warnings
# ---------------------------------------------------------------------------

class FormatError(ValueError):
    """The header block is not a NIfTI header (size or magic mismatch)."""


class UnsupportedEncoding(UserWarning):
    """The datatype code is outside the supported set; float32 is assumed."""


class LengthMismatch(UserWarning):
    """The payload holds more or fewer elements than the header declares."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ElementEncoding(enum.Enum):
    """Voxel element encodings, keyed by the NIfTI ``datatype`` code."""

    UINT8 = 2
    INT16 = 4
    INT32 = 8
    FLOAT32 = 16
    FLOAT64 = 64
    INT8 = 256
    UINT16 = 512
    UINT32 = 768

    @property
    def dtype(self) -> np.dtype:
        """Native-order numpy dtype for this encoding."""
        return np.dtype(_ENCODING_DTYPES[self])

    @property
    def itemsize(self) -> int:
        return self.dtype.itemsize

    @classmethod
    def from_code(cls, code: int) -> ElementEncoding | None:
        """Return the encoding for *code*, or ``None`` when unsupported."""
        try:
            return cls(int(code))
        except ValueError:
            return None


_ENCODING_DTYPES: dict[ElementEncoding, str] = {
    ElementEncoding.UINT8: "u1",
    ElementEncoding.INT16: "i2",
    ElementEncoding.INT32: "i4",
    ElementEncoding.FLOAT32: "f4",
    ElementEncoding.FLOAT64: "f8",
    ElementEncoding.INT8: "i1",
    ElementEncoding.UINT16: "u2",
    ElementEncoding.UINT32: "u4",
}


class PlaneAxis(enum.Enum):
    """The three orthogonal slice axes of the voxel grid."""

    X = 0  # sagittal
    Y = 1  # coronal
    Z = 2  # axial

    @property
    def anatomical_name(self) -> str:
        return _ANATOMICAL_NAMES[self]

    @classmethod
    def parse(cls, value: PlaneAxis | str | int) -> PlaneAxis:
        """Coerce an axis given as enum, index, letter or anatomical name.

        Raises
        ------
        ValueError
            If *value* does not name an axis.
        """
        if isinstance(value, PlaneAxis):
            return value
        if isinstance(value, int):
            return cls(value)
        key = str(value).strip().lower()
        for axis in cls:
            if key in (axis.name.lower(), axis.anatomical_name):
                return axis
        raise ValueError(
            f"Unknown plane axis {value!r}. "
            "Expected one of x/y/z or sagittal/coronal/axial."
        )


_ANATOMICAL_NAMES: dict[PlaneAxis, str] = {
    PlaneAxis.X: "sagittal",
    PlaneAxis.Y: "coronal",
    PlaneAxis.Z: "axial",
}


# ---------------------------------------------------------------------------
# Volume models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VolumeHeader:
    """Validated header of a volumetric scan.

    ``dimensions`` are always >= 1 and ``spacing`` components always > 0;
    :func:`mpr_volume.ingestion.header.parse_header` coerces bad values
    and records what it changed in ``warnings``.
    """

    dimensions: tuple[int, int, int] = (1, 1, 1)
    spacing: tuple[float, float, float] = (1.0, 1.0, 1.0)
    encoding: ElementEncoding = ElementEncoding.FLOAT32
    datatype_code: int = ElementEncoding.FLOAT32.value
    byte_order: str = "<"
    vox_offset: int = 352
    scale_slope: float = float("nan")
    scale_inter: float = 0.0
    affine: np.ndarray | None = None
    orientation: str = ""
    description: str = ""
    format_version: int = 1
    warnings: tuple[str, ...] = ()

    @property
    def voxel_count(self) -> int:
        x, y, z = self.dimensions
        return x * y * z

    @property
    def physical_extent(self) -> tuple[float, float, float]:
        """Size of the volume in millimetres along each axis."""
        return tuple(  # type: ignore[return-value]
            float(n * s) for n, s in zip(self.dimensions, self.spacing)
        )

    @property
    def has_scaling(self) -> bool:
        """Whether ``scl_slope``/``scl_inter`` change the stored values."""
        slope = self.scale_slope
        if not math.isfinite(slope) or slope == 0.0:
            return False
        inter = self.scale_inter if math.isfinite(self.scale_inter) else 0.0
        return not (slope == 1.0 and inter == 0.0)


@dataclass(frozen=True)
class IntensityWindow:
    """Display bounds used to rescale raw intensities into ``[0, 1]``.

    A collapsed range (``upper - lower < 1e-4``, e.g. a uniform volume) is
    replaced with a unit-width window starting at ``lower``.
    """

    lower: float = 0.0
    upper: float = 1.0

    def __post_init__(self) -> None:
        if not self.upper - self.lower >= COLLAPSED_RANGE:
            object.__setattr__(self, "upper", float(self.lower) + 1.0)

    @property
    def width(self) -> float:
        return self.upper - self.lower


@dataclass(frozen=True)
class ContrastWindow:
    """Level/width contrast window applied when a slice is sampled.

    ``level`` is clamped to ``[0, 1]`` and ``width`` to ``[0.1, 2]``.  A
    disabled window passes sampled values through unchanged.
    """

    level: float = 0.5
    width: float = 1.0
    enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "level", _clamp(float(self.level), 0.0, 1.0))
        object.__setattr__(self, "width", _clamp(float(self.width), 0.1, 2.0))

    @property
    def lower(self) -> float:
        return self.level - self.width / 2.0

    @property
    def upper(self) -> float:
        return self.level + self.width / 2.0


# ---------------------------------------------------------------------------
# Interactive state
# ---------------------------------------------------------------------------

@dataclass
class PlaneState:
    """Cursor of one slice plane.

    ``current_index == round(normalized_position * max_index)`` holds after
    every coordinator update.  ``buffer`` is allocated once and overwritten
    in place on each resample; ``revision`` counts those resamples so that
    consumers can tell when to re-upload it.
    """

    axis: PlaneAxis
    current_index: int = -1
    normalized_position: float = 0.5
    local_offset: float = 0.0
    buffer: np.ndarray = field(default_factory=_empty_array)
    revision: int = 0


@dataclass(frozen=True)
class DragSession:
    """Pointer drag in progress: where it started and where the plane was."""

    start_pointer: tuple[float, float]
    start_local: float


@dataclass(frozen=True)
class ViewState:
    """Serializable snapshot of the plane positions and contrast window.

    ``positions`` is stored as sorted ``(axis, position)`` pairs keyed by
    ``"x"``/``"y"``/``"z"`` so that snapshots are hashable; a mapping with
    letter or anatomical keys is accepted on construction.
    """

    positions: tuple[tuple[str, float], ...] = ()
    window_level: float = 0.5
    window_width: float = 1.0
    window_enabled: bool = True
    source_path: str = ""

    def __post_init__(self) -> None:
        items = self.positions.items() if isinstance(self.positions, dict) else self.positions
        pairs = {PlaneAxis.parse(k).name.lower(): float(v) for k, v in items}
        object.__setattr__(self, "positions", tuple(sorted(pairs.items())))

    def position(self, axis: PlaneAxis | str) -> float | None:
        """Stored position for *axis*, or ``None`` when it was not captured."""
        return dict(self.positions).get(PlaneAxis.parse(axis).name.lower())

    def to_dict(self) -> dict[str, Any]:
        return {
            "positions": dict(self.positions),
            "window": {
                "level": self.window_level,
                "width": self.window_width,
                "enabled": self.window_enabled,
            },
            "source_path": self.source_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ViewState:
        window = data.get("window") or {}
        return cls(
            positions=dict(data.get("positions") or {}),
            window_level=float(window.get("level", 0.5)),
            window_width=float(window.get("width", 1.0)),
            window_enabled=bool(window.get("enabled", True)),
            source_path=str(data.get("source_path", "")),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> ViewState:
        return cls.from_dict(json.loads(text))


# ---------------------------------------------------------------------------
# Configuration models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizationSettings:
    """Load-time display-range normalisation settings."""

    use_percentile: bool = True
    lower_percentile: float = 2.0
    upper_percentile: float = 98.0

    def __post_init__(self) -> None:
        lo, hi = self.lower_percentile, self.upper_percentile
        if not (0.0 <= lo <= 100.0 and 0.0 <= hi <= 100.0):
            raise ValueError(
                f"Percentiles must lie in [0, 100]; got ({lo}, {hi})."
            )
        if lo > hi:
            raise ValueError(
                f"Lower percentile ({lo}) must not exceed upper percentile ({hi})."
            )


@dataclass(frozen=True)
class ExtractionSettings:
    """Voxel extraction settings.

    ``flip_axis`` names the grid axis reversed during extraction
    (``None`` disables the reversal).
    """

    flip_axis: int | None = 2

    def __post_init__(self) -> None:
        if self.flip_axis is not None and self.flip_axis not in (0, 1, 2):
            raise ValueError(f"flip_axis must be 0, 1, 2 or None; got {self.flip_axis!r}.")


@dataclass(frozen=True)
class InteractionSettings:
    """Keyboard stepping and pointer drag settings for slice planes."""

    allow_keyboard: bool = True
    allow_drag: bool = True
    keyboard_speed: float = 0.01
    drag_sensitivity: float = 0.001
    min_position: float = 0.0
    max_position: float = 1.0


@dataclass(frozen=True)
class AppConfig:
    """Application configuration loaded from YAML with environment overlays.

    Configuration is resolved in order:
      1. the packaged ``default.yaml``
      2. an optional overlay file (``MPR_CONFIG``)
      3. Environment variables prefixed with ``MPR_``
    """

    data: dict[str, Any] = field(default_factory=_empty_dict)

    # -- factory -----------------------------------------------------------

    @staticmethod
    def load(
        default_path: str | Path,
        overlay_path: str | Path | None = None,
        env_prefix: str = "MPR_",
    ) -> AppConfig:
        """Load configuration from YAML files and environment variables.

        Parameters
        ----------
        default_path:
            Path to the base configuration file.
        overlay_path:
            Optional path to a user overlay.
        env_prefix:
            Prefix for environment variable overrides.  A variable named
            ``MPR_WINDOW__LEVEL`` maps to ``config["window"]["level"]``.

        Returns
        -------
        AppConfig
            Frozen configuration object exposing the merged dictionary via
            ``data`` and typed helpers.
        """
        merged: dict[str, Any] = {}

        default = Path(default_path)
        if default.exists():
            with open(default, "r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            merged = _deep_merge(merged, raw)

        if overlay_path is not None:
            overlay = Path(overlay_path)
            if overlay.exists():
                with open(overlay, "r", encoding="utf-8") as fh:
                    raw = yaml.safe_load(fh) or {}
                merged = _deep_merge(merged, raw)

        for key, value in os.environ.items():
            if key.startswith(env_prefix) and "__" in key:
                parts = key[len(env_prefix):].lower().split("__")
                _set_nested(merged, parts, _coerce(value))

        return AppConfig(data=merged)

    # -- typed accessors ---------------------------------------------------

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Retrieve a value using dot-separated path, e.g. ``window.level``."""
        node: Any = self.data
        for part in dotted_key.split("."):
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node

    def section(self, name: str) -> dict[str, Any]:
        """Return a top-level section as a dict (empty dict if missing)."""
        val = self.data.get(name)
        if isinstance(val, dict):
            return dict(val)
        return {}

    def normalization(self) -> NormalizationSettings:
        sec = self.section("normalization")
        return NormalizationSettings(
            use_percentile=bool(sec.get("use_percentile", True)),
            lower_percentile=float(sec.get("lower_percentile", 2.0)),
            upper_percentile=float(sec.get("upper_percentile", 98.0)),
        )

    def extraction(self) -> ExtractionSettings:
        flip = self.section("extraction").get("flip_axis", 2)
        return ExtractionSettings(flip_axis=None if flip is None else int(flip))

    def window(self) -> ContrastWindow:
        sec = self.section("window")
        return ContrastWindow(
            level=float(sec.get("level", 0.5)),
            width=float(sec.get("width", 1.0)),
            enabled=bool(sec.get("enabled", True)),
        )

    def interaction(self) -> InteractionSettings:
        sec = self.section("interaction")
        return InteractionSettings(
            allow_keyboard=bool(sec.get("allow_keyboard", True)),
            allow_drag=bool(sec.get("allow_drag", True)),
            keyboard_speed=float(sec.get("keyboard_speed", 0.01)),
            drag_sensitivity=float(sec.get("drag_sensitivity", 0.001)),
            min_position=float(sec.get("min_position", 0.0)),
            max_position=float(sec.get("max_position", 1.0)),
        )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overlay* into *base* (non-destructive)."""
    merged = dict(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _set_nested(d: dict[str, Any], parts: list[str], value: Any) -> None:
    """Set a value in a nested dict using a list of keys."""
    for part in parts[:-1]:
        d = d.setdefault(part, {})
    if parts:
        d[parts[-1]] = value


def _coerce(value: str) -> Any:
    """Best-effort coercion from string to bool / int / float / None / str."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    if value.lower() in ("none", "null"):
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
