"""Ingestion layer -- NIfTI header parsing and voxel extraction.

Public API::

    from mpr_volume.ingestion import parse_header, extract_voxels, read_nifti

:func:`read_nifti` splits a file into a validated header and raw payload;
:func:`load_raw_volume` additionally decodes the payload into a grid.
"""
from __future__ import annotations

from mpr_volume.ingestion.header import parse_header, resolve_dimensions, resolve_spacing
from mpr_volume.ingestion.nifti_loader import NiftiPayload, load_raw_volume, read_nifti
from mpr_volume.ingestion.voxels import decode_payload, extract_voxels

__all__ = [
    "NiftiPayload",
    "decode_payload",
    "extract_voxels",
    "load_raw_volume",
    "parse_header",
    "read_nifti",
    "resolve_dimensions",
    "resolve_spacing",
]
