"""Tests for payload decoding and grid extraction."""

from __future__ import annotations

import numpy as np
import pytest

from mpr_volume.domain.models import ElementEncoding, LengthMismatch, VolumeHeader
from mpr_volume.ingestion.voxels import decode_payload, extract_voxels


def _header(dims=(2, 2, 3), encoding=ElementEncoding.FLOAT32, order="<", **kwargs):
    return VolumeHeader(
        dimensions=dims,
        encoding=encoding,
        datatype_code=encoding.value,
        byte_order=order,
        **kwargs,
    )


# =====================================================================
# decode_payload
# =====================================================================


class TestDecodePayload:
    """One dtype per load, vectorised decode."""

    @pytest.mark.parametrize("encoding", list(ElementEncoding))
    def test_each_encoding(self, encoding):
        values = np.array([0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11], dtype=encoding.dtype)
        flat = decode_payload(_header(encoding=encoding), values.tobytes())
        assert flat.dtype == np.float32
        np.testing.assert_array_equal(flat, np.arange(12, dtype=np.float32))

    def test_big_endian(self):
        values = (np.arange(12) * -3).astype(">i2")
        flat = decode_payload(_header(encoding=ElementEncoding.INT16, order=">"), values.tobytes())
        np.testing.assert_array_equal(flat, np.arange(12) * -3)

    def test_short_payload_zero_filled(self):
        values = np.arange(1, 9, dtype=np.float32)
        with pytest.warns(LengthMismatch, match="shorter"):
            flat = decode_payload(_header(), values.tobytes())
        assert flat.shape == (12,)
        np.testing.assert_array_equal(flat[:8], values)
        np.testing.assert_array_equal(flat[8:], 0.0)

    def test_long_payload_truncated(self):
        values = np.arange(20, dtype=np.float32)
        with pytest.warns(LengthMismatch, match="longer"):
            flat = decode_payload(_header(), values.tobytes())
        np.testing.assert_array_equal(flat, np.arange(12, dtype=np.float32))

    def test_empty_payload(self):
        with pytest.warns(LengthMismatch):
            flat = decode_payload(_header(), b"")
        np.testing.assert_array_equal(flat, np.zeros(12, dtype=np.float32))

    def test_partial_trailing_element_ignored(self):
        raw = np.arange(12, dtype=np.float32).tobytes() + b"\x01\x02"
        flat = decode_payload(_header(), raw)
        np.testing.assert_array_equal(flat, np.arange(12, dtype=np.float32))

    def test_scaling_applied(self):
        values = np.arange(12, dtype=np.int16)
        header = _header(encoding=ElementEncoding.INT16, scale_slope=2.0, scale_inter=-5.0)
        flat = decode_payload(header, values.tobytes())
        np.testing.assert_allclose(flat, np.arange(12) * 2.0 - 5.0)

    def test_identity_or_zero_slope_ignored(self):
        values = np.arange(12, dtype=np.int16)
        for slope in (0.0, 1.0, float("nan")):
            header = _header(encoding=ElementEncoding.INT16, scale_slope=slope)
            flat = decode_payload(header, values.tobytes())
            np.testing.assert_array_equal(flat, np.arange(12, dtype=np.float32))


# =====================================================================
# extract_voxels
# =====================================================================


class TestExtractVoxels:
    """Fortran-order layout, depth reversal and non-finite cleanup."""

    def test_depth_axis_reversed(self):
        dims = (2, 2, 3)
        flat = np.arange(12, dtype=np.float32)
        grid = extract_voxels(_header(dims), flat.tobytes())
        assert grid.shape == dims
        assert grid.flags.c_contiguous
        for x in range(2):
            for y in range(2):
                for z in range(3):
                    assert grid[x, y, z] == flat[x + 2 * y + 4 * (2 - z)]

    def test_no_flip_keeps_file_order(self):
        flat = np.arange(12, dtype=np.float32)
        grid = extract_voxels(_header(), flat.tobytes(), flip_axis=None)
        for x in range(2):
            for y in range(2):
                for z in range(3):
                    assert grid[x, y, z] == flat[x + 2 * y + 4 * z]

    def test_flip_other_axis(self):
        flat = np.arange(12, dtype=np.float32)
        grid = extract_voxels(_header(), flat.tobytes(), flip_axis=0)
        assert grid[0, 0, 0] == flat[1]
        assert grid[1, 0, 0] == flat[0]

    def test_non_finite_replaced(self):
        flat = np.arange(12, dtype=np.float32)
        flat[3] = np.nan
        flat[5] = np.inf
        flat[7] = -np.inf
        grid = extract_voxels(_header(), flat.tobytes(), flip_axis=None)
        assert np.isfinite(grid).all()
        assert grid.reshape(-1, order="F")[3] == 0.0
        assert grid.reshape(-1, order="F")[5] == 0.0
        assert grid.reshape(-1, order="F")[7] == 0.0

    def test_short_payload_fills_first_file_slices(self):
        dims = (2, 2, 3)
        flat = np.ones(8, dtype=np.float32)
        with pytest.warns(LengthMismatch):
            grid = extract_voxels(_header(dims), flat.tobytes())
        # Last file slice was missing; after the depth flip it is grid z=0.
        np.testing.assert_array_equal(grid[:, :, 0], 0.0)
        np.testing.assert_array_equal(grid[:, :, 1:], 1.0)
