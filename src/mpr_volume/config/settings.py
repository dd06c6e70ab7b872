"""Settings module -- single entry point for application configuration.

:func:`get_config` returns the merged configuration dictionary.  It loads the
packaged ``default.yaml``, overlays the file named by ``MPR_CONFIG`` when
set, and finally applies any ``MPR_`` prefixed environment variable
overrides.
"""

from __future__ import annotations

import functools
import os
from pathlib import Path
from typing import Any

from mpr_volume.domain.models import AppConfig

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "default.yaml"

# Environment variable naming an optional overlay YAML file.
OVERLAY_ENV_VAR = "MPR_CONFIG"


@functools.lru_cache(maxsize=1)
def get_config() -> dict[str, Any]:
    """Return the fully merged configuration dictionary.

    The result is cached so that repeated calls within the same process are
    essentially free.

    Resolution order:

    1. packaged ``default.yaml``
    2. ``$MPR_CONFIG`` if set and the file exists
    3. Environment variables with ``MPR_`` prefix

    Returns
    -------
    dict[str, Any]
        The merged configuration tree.
    """
    return get_typed_config().data


def get_typed_config() -> AppConfig:
    """Return the :class:`AppConfig` wrapper for typed access.

    Unlike :func:`get_config` this is not cached, so tests and long-running
    callers can pick up environment changes.

    Returns
    -------
    AppConfig
        Frozen configuration object.
    """
    overlay = os.environ.get(OVERLAY_ENV_VAR)
    return AppConfig.load(
        default_path=DEFAULT_CONFIG_PATH,
        overlay_path=overlay or None,
        env_prefix="MPR_",
    )
