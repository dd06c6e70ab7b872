"""Tests for NIfTI header parsing and dimension/spacing recovery."""

from __future__ import annotations

import struct

import nibabel as nib
import numpy as np
import pytest

from mpr_volume.domain.models import ElementEncoding, FormatError, UnsupportedEncoding
from mpr_volume.ingestion.header import (
    NIFTI1_HEADER_SIZE,
    parse_header,
    resolve_dimensions,
    resolve_spacing,
    sniff_header_size,
)


def _header_bytes(
    shape=(4, 5, 6),
    zooms=(1.0, 2.0, 3.0),
    dtype=np.int16,
    endianness=None,
    klass=nib.Nifti1Header,
) -> bytes:
    hdr = klass(endianness=endianness) if endianness else klass()
    hdr.set_data_shape(shape)
    hdr.set_zooms(zooms)
    hdr.set_data_dtype(dtype)
    return hdr.binaryblock


# =====================================================================
# parse_header
# =====================================================================


class TestParseHeader:
    """Valid headers decode into a VolumeHeader."""

    def test_dimensions_spacing_encoding(self):
        header = parse_header(_header_bytes())
        assert header.dimensions == (4, 5, 6)
        assert header.spacing == pytest.approx((1.0, 2.0, 3.0))
        assert header.encoding is ElementEncoding.INT16
        assert header.byte_order == "<"
        assert header.format_version == 1
        assert header.warnings == ()

    def test_physical_extent(self):
        header = parse_header(_header_bytes())
        assert header.physical_extent == pytest.approx((4.0, 10.0, 18.0))
        assert header.voxel_count == 120

    @pytest.mark.parametrize(
        "dtype, encoding",
        [
            (np.uint8, ElementEncoding.UINT8),
            (np.int16, ElementEncoding.INT16),
            (np.int32, ElementEncoding.INT32),
            (np.float32, ElementEncoding.FLOAT32),
            (np.float64, ElementEncoding.FLOAT64),
            (np.int8, ElementEncoding.INT8),
            (np.uint16, ElementEncoding.UINT16),
            (np.uint32, ElementEncoding.UINT32),
        ],
    )
    def test_supported_encodings(self, dtype, encoding):
        header = parse_header(_header_bytes(dtype=dtype))
        assert header.encoding is encoding
        assert header.encoding.dtype == np.dtype(dtype)

    def test_big_endian_header(self):
        header = parse_header(_header_bytes(endianness=">"))
        assert header.byte_order == ">"
        assert header.dimensions == (4, 5, 6)

    def test_nifti2_header(self):
        header = parse_header(_header_bytes(klass=nib.Nifti2Header))
        assert header.format_version == 2
        assert header.dimensions == (4, 5, 6)

    def test_extra_bytes_ignored(self):
        raw = _header_bytes() + b"\x00" * 4 + b"payload"
        assert parse_header(raw).dimensions == (4, 5, 6)

    def test_affine_and_orientation(self):
        header = parse_header(_header_bytes())
        assert header.affine is not None
        assert header.affine.shape == (4, 4)
        assert len(header.orientation) == 3


class TestHeaderRejection:
    """Size and magic mismatches are fatal FormatErrors."""

    def test_wrong_header_size(self):
        raw = bytearray(_header_bytes())
        raw[0:4] = struct.pack("<i", 350)
        with pytest.raises(FormatError, match="header size"):
            parse_header(bytes(raw))

    def test_too_short_for_size_field(self):
        with pytest.raises(FormatError):
            sniff_header_size(b"\x5c\x01")

    def test_truncated_header(self):
        raw = _header_bytes()[:200]
        with pytest.raises(FormatError, match="Truncated"):
            parse_header(raw)

    def test_bad_magic(self):
        raw = bytearray(_header_bytes())
        raw[344:348] = b"abc\x00"
        with pytest.raises(FormatError, match="magic"):
            parse_header(bytes(raw))

    def test_sniff_reports_byte_order(self):
        assert sniff_header_size(struct.pack(">i", NIFTI1_HEADER_SIZE)) == (348, ">")
        assert sniff_header_size(struct.pack("<i", 540)) == (540, "<")


class TestHeaderRepairs:
    """Bad dimensions, spacings and datatypes are repaired with a warning."""

    def test_zero_dimension_coerced(self):
        hdr = nib.Nifti1Header()
        hdr["dim"] = [3, 4, 0, 6, 1, 1, 1, 1]
        header = parse_header(hdr.binaryblock)
        assert header.dimensions == (4, 1, 6)
        assert any("Dimension y" in note for note in header.warnings)

    def test_four_d_takes_first_three_sizes(self):
        hdr = nib.Nifti1Header()
        hdr["dim"] = [4, 8, 9, 10, 3, 1, 1, 1]
        assert parse_header(hdr.binaryblock).dimensions == (8, 9, 10)

    def test_non_positive_spacing_defaults(self):
        hdr = nib.Nifti1Header()
        hdr.set_data_shape((2, 2, 2))
        hdr["pixdim"] = [1.0, 0.0, -2.0, 3.0, 1.0, 1.0, 1.0, 1.0]
        header = parse_header(hdr.binaryblock)
        assert header.spacing == pytest.approx((1.0, 1.0, 3.0))
        assert len(header.warnings) == 2

    def test_unsupported_datatype_falls_back_to_float32(self):
        hdr = nib.Nifti1Header()
        hdr.set_data_shape((2, 2, 2))
        hdr["datatype"] = 32  # complex64
        with pytest.warns(UnsupportedEncoding):
            header = parse_header(hdr.binaryblock)
        assert header.encoding is ElementEncoding.FLOAT32
        assert header.datatype_code == 32


# =====================================================================
# resolve_dimensions / resolve_spacing
# =====================================================================


class TestResolveDimensions:
    """Both dimension conventions and the coercion to >= 1."""

    def test_count_three(self):
        assert resolve_dimensions([3, 64, 32, 16, 0, 0, 0, 0]) == (64, 32, 16)

    def test_scan_skips_non_positive_sizes(self):
        assert resolve_dimensions([5, 0, 7, 8, 9, 1, 0, 0]) == (7, 8, 9)

    def test_fewer_than_three_positive(self):
        notes: list[str] = []
        assert resolve_dimensions([2, 8, 9, 0, 0, 0, 0, 0], notes) == (8, 9, 1)
        assert len(notes) == 1

    def test_negative_coerced(self):
        assert resolve_dimensions([3, -4, 5, 6]) == (1, 5, 6)

    def test_short_input_padded(self):
        assert resolve_dimensions([1, 5]) == (5, 1, 1)

    def test_always_at_least_one(self):
        rng = np.random.default_rng(7)
        for _ in range(200):
            dim = rng.integers(-5, 20, size=8).tolist()
            assert all(d >= 1 for d in resolve_dimensions(dim))


class TestResolveSpacing:
    """Spacing components are always positive."""

    def test_valid_passthrough(self):
        assert resolve_spacing([1.0, 0.5, 0.7, 2.0]) == pytest.approx((0.5, 0.7, 2.0))

    def test_nan_and_inf_default(self):
        spacing = resolve_spacing([1.0, float("nan"), float("inf"), 2.0])
        assert spacing == pytest.approx((1.0, 1.0, 2.0))

    def test_always_positive(self):
        rng = np.random.default_rng(11)
        for _ in range(200):
            pixdim = rng.uniform(-3.0, 3.0, size=8).tolist()
            assert all(s > 0 for s in resolve_spacing(pixdim))
