"""NIfTI header parsing and validation.

The raw header block is validated here (size field and magic), then
decoded with ``nibabel``'s header classes.  Dimensions, voxel spacing and
the element encoding are resolved into a :class:`VolumeHeader` whose
values are always usable: bad dimensions become 1, bad spacings become 1.0,
and an unknown datatype falls back to float32.  Each such repair is logged
and recorded in ``VolumeHeader.warnings``.
"""
from __future__ import annotations

import io
import logging
import math
import struct
import warnings
from typing import Any, Sequence

import numpy as np

from mpr_volume.domain.models import (
    ElementEncoding,
    FormatError,
    UnsupportedEncoding,
    VolumeHeader,
)

try:
    import nibabel as nib
    from nibabel.orientations import aff2axcodes
    from nibabel.spatialimages import HeaderDataError
except ImportError as _exc:  # pragma: no cover
    raise ImportError(
        "nibabel is required for NIfTI parsing. Install it with: "
        "pip install 'nibabel>=5.0'"
    ) from _exc

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Format constants
# ---------------------------------------------------------------------------

NIFTI1_HEADER_SIZE = 348
NIFTI2_HEADER_SIZE = 540

_HEADER_SIZES: dict[int, int] = {
    NIFTI1_HEADER_SIZE: 1,
    NIFTI2_HEADER_SIZE: 2,
}

# (offset, accepted magic strings) per format version
_MAGIC: dict[int, tuple[int, tuple[bytes, ...]]] = {
    1: (344, (b"n+1\x00", b"ni1\x00")),
    2: (4, (b"n+2\x00\r\n\x1a\n", b"ni2\x00\r\n\x1a\n")),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def sniff_header_size(prefix: bytes) -> tuple[int, str]:
    """Return ``(header_size, byte_order)`` from the first four header bytes.

    Parameters
    ----------
    prefix:
        At least the first four bytes of the header block.

    Raises
    ------
    FormatError
        If fewer than four bytes are given or the size field matches
        neither the NIfTI-1 (348) nor the NIfTI-2 (540) header size in
        either byte order.
    """
    if len(prefix) < 4:
        raise FormatError(
            f"Header too short: {len(prefix)} bytes, cannot read size field."
        )
    for order in ("<", ">"):
        (size,) = struct.unpack(f"{order}i", prefix[:4])
        if size in _HEADER_SIZES:
            return size, order
    (little,) = struct.unpack("<i", prefix[:4])
    raise FormatError(
        f"Unexpected header size {little}; expected {NIFTI1_HEADER_SIZE} "
        f"(NIfTI-1) or {NIFTI2_HEADER_SIZE} (NIfTI-2)."
    )


def parse_header(raw: bytes) -> VolumeHeader:
    """Decode and validate a NIfTI-1 or NIfTI-2 header block.

    Parameters
    ----------
    raw:
        The header bytes.  Only the first 348 (or 540) bytes are used;
        anything after them (extensions, payload) is ignored.

    Returns
    -------
    VolumeHeader
        Header with resolved dimensions (each >= 1), spacing (each > 0)
        and element encoding.

    Raises
    ------
    FormatError
        If the size field, block length or magic string is wrong.
    """
    size, byte_order = sniff_header_size(raw)
    version = _HEADER_SIZES[size]
    if len(raw) < size:
        raise FormatError(
            f"Truncated header: got {len(raw)} bytes, expected {size}."
        )

    offset, accepted = _MAGIC[version]
    magic = bytes(raw[offset:offset + len(accepted[0])])
    if magic not in accepted:
        raise FormatError(
            f"Bad NIfTI-{version} magic {magic!r}; expected one of {accepted!r}."
        )

    klass = nib.Nifti1Header if version == 1 else nib.Nifti2Header
    hdr = klass.from_fileobj(io.BytesIO(bytes(raw[:size])), endianness=byte_order, check=False)

    notes: list[str] = []
    dims = resolve_dimensions([int(d) for d in hdr["dim"]], notes)
    spacing = resolve_spacing([float(p) for p in hdr["pixdim"]], notes)

    code = int(hdr["datatype"])
    encoding = ElementEncoding.from_code(code)
    if encoding is None:
        message = (
            f"Unsupported datatype code {code}; "
            "reinterpreting payload as float32."
        )
        _report(message, UnsupportedEncoding, notes)
        encoding = ElementEncoding.FLOAT32

    affine, orientation = _orientation(hdr)

    header = VolumeHeader(
        dimensions=dims,
        spacing=spacing,
        encoding=encoding,
        datatype_code=code,
        byte_order=byte_order,
        vox_offset=int(float(hdr["vox_offset"])),
        scale_slope=float(hdr["scl_slope"]),
        scale_inter=float(hdr["scl_inter"]),
        affine=affine,
        orientation=orientation,
        description=_text_field(hdr, "descrip"),
        format_version=version,
        warnings=tuple(notes),
    )
    logger.info(
        "Parsed NIfTI-%d header: dims=%s spacing=%s encoding=%s",
        version, header.dimensions, header.spacing, header.encoding.name,
    )
    return header


def resolve_dimensions(
    dim: Sequence[int],
    notes: list[str] | None = None,
) -> tuple[int, int, int]:
    """Recover three spatial sizes from a NIfTI ``dim`` field.

    When ``dim[0] == 3`` the sizes are ``dim[1:4]``.  Otherwise the per-axis
    size fields ``dim[1:]`` are scanned and the first three positive values
    are taken; with fewer than three positive sizes ``dim[1:4]`` is used as
    is.  Non-positive results are coerced to 1.

    Parameters
    ----------
    dim:
        The raw ``dim`` array (count followed by up to seven sizes).
    notes:
        Optional list collecting human-readable warnings.
    """
    notes = notes if notes is not None else []
    values = list(dim)
    sizes = values[1:]

    if len(values) >= 4 and values[0] == 3:
        picked = sizes[:3]
    else:
        positive = [d for d in sizes if d > 0]
        picked = positive[:3] if len(positive) >= 3 else sizes[:3]

    picked = picked + [1] * (3 - len(picked))
    resolved: list[int] = []
    for axis, size in zip("xyz", picked):
        if size <= 0:
            _report(
                f"Dimension {axis} resolved to {size}; using 1.",
                None,
                notes,
            )
            size = 1
        resolved.append(int(size))
    return resolved[0], resolved[1], resolved[2]


def resolve_spacing(
    pixdim: Sequence[float],
    notes: list[str] | None = None,
) -> tuple[float, float, float]:
    """Return ``pixdim[1:4]`` with non-positive or non-finite entries set to 1.0."""
    notes = notes if notes is not None else []
    values = list(pixdim[1:4]) + [1.0] * max(0, 4 - len(pixdim))
    resolved: list[float] = []
    for axis, value in zip("xyz", values):
        if not math.isfinite(value) or value <= 0.0:
            _report(f"Voxel spacing {axis}={value}; using 1.0.", None, notes)
            value = 1.0
        resolved.append(float(value))
    return resolved[0], resolved[1], resolved[2]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _report(message: str, category: type[Warning] | None, notes: list[str]) -> None:
    """Log a recoverable header problem and remember it on the header."""
    logger.warning(message)
    notes.append(message)
    if category is not None:
        warnings.warn(message, category, stacklevel=3)


def _orientation(hdr: Any) -> tuple[np.ndarray | None, str]:
    """Best affine and its axis codes; ``(None, "")`` when unavailable."""
    try:
        affine = np.asarray(hdr.get_best_affine(), dtype=np.float64)
    except (HeaderDataError, ValueError, TypeError, np.linalg.LinAlgError):
        logger.debug("No usable affine in header", exc_info=True)
        return None, ""
    try:
        codes = "".join(str(c) for c in aff2axcodes(affine) if c is not None)
    except (ValueError, TypeError, np.linalg.LinAlgError):
        codes = ""
    return affine, codes


def _text_field(hdr: Any, name: str) -> str:
    """Read a fixed-width string field, decoded and stripped of padding."""
    try:
        raw = hdr[name]
    except (KeyError, ValueError):
        return ""
    if isinstance(raw, np.ndarray):
        raw = raw.item()
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace").strip("\x00 ")
    return str(raw)
