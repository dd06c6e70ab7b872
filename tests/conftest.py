"""Shared pytest fixtures for the mpr_volume test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import nibabel as nib
import numpy as np
import pytest

from mpr_volume.domain.models import AppConfig, NormalizationSettings
from mpr_volume.viewer.store import VolumeStore

FULL_RANGE = NormalizationSettings(use_percentile=False)


# ---------------------------------------------------------------------------
# In-memory volumes
# ---------------------------------------------------------------------------


@pytest.fixture()
def linear_grid() -> np.ndarray:
    """A 4x4x4 ``[x, y, z]`` grid holding ``x + 4y + 16z`` (0..63)."""
    return np.arange(64, dtype=np.float32).reshape((4, 4, 4), order="F")


@pytest.fixture()
def linear_store(linear_grid) -> VolumeStore:
    """The linear grid normalised with the full range (values / 63)."""
    return VolumeStore.from_array(linear_grid, settings=FULL_RANGE)


@pytest.fixture()
def random_store() -> VolumeStore:
    """A 5x7x9 store of uniform random values with anisotropic spacing."""
    rng = np.random.default_rng(seed=0)
    data = rng.uniform(0.0, 1000.0, size=(5, 7, 9)).astype(np.float32)
    return VolumeStore.from_array(data, spacing=(1.0, 2.0, 0.5), settings=FULL_RANGE)


@pytest.fixture()
def app_config() -> AppConfig:
    """Configuration independent of the environment (full-range normalisation)."""
    return AppConfig(
        data={
            "normalization": {"use_percentile": False},
            "extraction": {"flip_axis": 2},
            "window": {"enabled": True, "level": 0.5, "width": 1.0},
            "interaction": {"keyboard_speed": 0.1, "drag_sensitivity": 0.001},
        }
    )


# ---------------------------------------------------------------------------
# NIfTI files
# ---------------------------------------------------------------------------


@pytest.fixture()
def write_nifti(tmp_path) -> Callable[..., Path]:
    """Factory writing an array to a NIfTI file under ``tmp_path``."""

    def _write(
        data: np.ndarray,
        name: str = "scan.nii",
        zooms: tuple[float, float, float] = (1.0, 1.0, 1.0),
        image_class: type = nib.Nifti1Image,
    ) -> Path:
        affine = np.diag([*zooms, 1.0])
        img = image_class(data, affine)
        path = tmp_path / name
        nib.save(img, str(path))
        return path

    return _write


@pytest.fixture()
def synthetic_nifti(write_nifti) -> Path:
    """A 16x12x10 float32 .nii file with 1 x 1.5 x 2.5 mm voxels."""
    data = np.random.default_rng(42).uniform(10.0, 1000.0, (16, 12, 10)).astype(
        np.float32,
    )
    return write_nifti(data, "scan.nii", zooms=(1.0, 1.5, 2.5))
