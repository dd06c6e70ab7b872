"""NIfTI file reader (.nii, .nii.gz and .hdr/.img pairs).

Uses ``nibabel``'s :class:`~nibabel.openers.ImageOpener` for byte-stream
access so that gzip/bzip2 compressed files are handled transparently.  The
header block is validated by :func:`mpr_volume.ingestion.header.parse_header`
and the payload decoded by :func:`mpr_volume.ingestion.voxels.extract_voxels`.
"""
from __future__ import annotations

import logging
import zlib
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from mpr_volume.domain.models import VolumeHeader
from mpr_volume.ingestion.header import parse_header, sniff_header_size
from mpr_volume.ingestion.voxels import extract_voxels

# ---------------------------------------------------------------------------
# Optional dependency import
# ---------------------------------------------------------------------------
try:
    from nibabel.filename_parser import splitext_addext
    from nibabel.openers import ImageOpener
except ImportError as _exc:  # pragma: no cover
    raise ImportError(
        "nibabel is required for NIfTI loading. Install it with: "
        "pip install 'nibabel>=5.0'"
    ) from _exc

logger = logging.getLogger(__name__)

_PAIRED_EXTENSIONS = (".hdr", ".img")

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NiftiPayload:
    """A parsed header together with the undecoded voxel bytes."""

    header: VolumeHeader
    payload: bytes | memoryview
    source_path: str = ""


def read_nifti(path: str | Path) -> NiftiPayload:
    """Read a NIfTI file and split it into header and raw payload.

    Parameters
    ----------
    path:
        A ``.nii`` / ``.nii.gz`` single file, or either half of a
        ``.hdr`` / ``.img`` pair (each optionally compressed).

    Returns
    -------
    NiftiPayload
        The validated header and the payload bytes starting at the first
        voxel.

    Raises
    ------
    FileNotFoundError
        If *path* (or the other half of a pair) does not exist.
    FormatError
        If the header block is not a valid NIfTI header.
    ValueError
        If a file cannot be read or decompressed.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"NIfTI file not found: {path}")

    root, ext, addext = splitext_addext(str(path))
    if ext.lower() in _PAIRED_EXTENSIONS:
        header_path = _sibling(root, ".hdr", addext)
        image_path = _sibling(root, ".img", addext)
        header = parse_header(_read_bytes(header_path))
        data = _read_bytes(image_path)
        offset = max(0, header.vox_offset)
        logger.info("Read paired NIfTI %s + %s", header_path.name, image_path.name)
    else:
        data = _read_bytes(path)
        header = parse_header(data)
        offset = _single_file_offset(data, header)
        logger.info("Read NIfTI file %s (%d bytes)", path.name, len(data))

    payload = memoryview(data)[offset:] if offset <= len(data) else memoryview(b"")
    return NiftiPayload(header=header, payload=payload, source_path=str(path))


def load_raw_volume(
    path: str | Path,
    *,
    flip_axis: int | None = 2,
) -> tuple[VolumeHeader, np.ndarray]:
    """Read a NIfTI file and decode it into an un-normalised grid.

    Parameters
    ----------
    path:
        Path to the scan.
    flip_axis:
        Grid axis reversed during extraction, ``None`` to keep file order.

    Returns
    -------
    tuple[VolumeHeader, np.ndarray]
        The header and a float32 grid of shape ``header.dimensions``.
    """
    nifti = read_nifti(path)
    grid = extract_voxels(nifti.header, nifti.payload, flip_axis=flip_axis)
    return nifti.header, grid


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_bytes(path: Path) -> bytes:
    if not path.is_file():
        raise FileNotFoundError(f"NIfTI file not found: {path}")
    try:
        with ImageOpener(str(path), "rb") as fh:
            return fh.read()
    except (EOFError, zlib.error, OSError) as exc:
        raise ValueError(f"Failed to read NIfTI file {path}: {exc}") from exc


def _sibling(root: str, ext: str, addext: str) -> Path:
    """Return the pair member with extension *ext*, matching compression.

    An uncompressed sibling is accepted when the compressed one is missing.
    """
    candidate = Path(root + ext + addext)
    if candidate.is_file() or not addext:
        return candidate
    return Path(root + ext)


def _single_file_offset(data: bytes, header: VolumeHeader) -> int:
    """Payload offset for a single-file image.

    A ``vox_offset`` that points inside the header block is replaced with
    the first byte after the header and its 4-byte extension flag.
    """
    size, _ = sniff_header_size(data)
    minimum = size + 4
    if header.vox_offset < minimum:
        logger.warning(
            "vox_offset %d lies inside the header; reading payload from byte %d.",
            header.vox_offset, minimum,
        )
        return minimum
    return header.vox_offset
