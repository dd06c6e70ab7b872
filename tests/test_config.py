"""Tests for YAML configuration loading and environment overrides."""

from __future__ import annotations

import pytest
import yaml

from mpr_volume.config import get_config, get_typed_config
from mpr_volume.config.settings import DEFAULT_CONFIG_PATH
from mpr_volume.domain.models import AppConfig, ContrastWindow


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("MPR_CONFIG", raising=False)
    for key in ("MPR_WINDOW__LEVEL", "MPR_NORMALIZATION__USE_PERCENTILE"):
        monkeypatch.delenv(key, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


class TestPackagedDefaults:
    """The shipped default.yaml."""

    def test_defaults(self):
        config = AppConfig.load(DEFAULT_CONFIG_PATH)
        norm = config.normalization()
        assert norm.use_percentile is True
        assert (norm.lower_percentile, norm.upper_percentile) == (2.0, 98.0)
        assert config.extraction().flip_axis == 2
        assert config.window() == ContrastWindow(0.5, 1.0, True)
        assert config.interaction().drag_sensitivity == pytest.approx(0.001)

    def test_get_config_cached(self):
        assert get_config() is get_config()
        assert get_config()["window"]["level"] == 0.5


class TestOverrides:
    """Overlay files and environment variables."""

    def test_overlay_file(self, tmp_path, monkeypatch):
        overlay = tmp_path / "local.yaml"
        overlay.write_text(yaml.safe_dump({"window": {"width": 0.4}}))
        monkeypatch.setenv("MPR_CONFIG", str(overlay))
        config = get_typed_config()
        assert config.window().width == pytest.approx(0.4)
        assert config.window().level == pytest.approx(0.5)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MPR_WINDOW__LEVEL", "0.3")
        monkeypatch.setenv("MPR_NORMALIZATION__USE_PERCENTILE", "false")
        config = get_typed_config()
        assert config.get("window.level") == pytest.approx(0.3)
        assert config.normalization().use_percentile is False

    def test_null_flip_axis(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("extraction:\n  flip_axis: null\n")
        assert AppConfig.load(path).extraction().flip_axis is None

    def test_invalid_values_rejected(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("normalization:\n  lower_percentile: 90\n  upper_percentile: 10\n")
        with pytest.raises(ValueError):
            AppConfig.load(path).normalization()

    def test_missing_file_gives_empty_config(self, tmp_path):
        config = AppConfig.load(tmp_path / "absent.yaml", env_prefix="NOPE_")
        assert config.data == {}
        assert config.get("window.level", 0.7) == 0.7
        assert config.section("window") == {}
