"""Configuration sub-package.

Provides settings loading and typed configuration access.

Quick usage::

    from mpr_volume.config import get_typed_config

    cfg = get_typed_config()
    print(cfg.normalization().lower_percentile)
"""

from __future__ import annotations

from mpr_volume.config.settings import get_config, get_typed_config

__all__ = [
    "get_config",
    "get_typed_config",
]
