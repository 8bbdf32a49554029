"""Report configuration and process-wide context.

Everything the builder would otherwise pull from globals lives on a
ReportContext: the version string pieces, the platform, the clock and
the uptime checkpoint shared by every report this process builds.
"""
from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from beacon import __version__

logger = logging.getLogger(__name__)

CONFIG_DIR = ".beacon"
CONFIG_FILE = "config.json"

# Platforms whose stability section carries OS-level crash counters
OS_CRASH_PLATFORMS = ("chromeos",)

_BOOL_TRUE = ("1", "true", "yes", "on")


@dataclass
class ReportContext:
    app_version: str = __version__
    version_extension: str = ""
    official_build: bool = False
    platform: str = sys.platform
    clock: Callable[[], float] = time.monotonic
    _uptime_checkpoint: Optional[float] = field(default=None, repr=False)
    _uptime_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def version_string(self) -> str:
        version = self.app_version + self.version_extension
        if not self.official_build:
            version += "-devel"
        return version

    @property
    def reports_os_crashes(self) -> bool:
        return self.platform in OS_CRASH_PLATFORMS

    def incremental_uptime(self) -> int:
        """Whole seconds since the previous call; the first call returns 0."""
        with self._uptime_lock:
            now = self.clock()
            if self._uptime_checkpoint is None:
                self._uptime_checkpoint = now
            elapsed = int(now - self._uptime_checkpoint)
            self._uptime_checkpoint = now
            return elapsed


def get_config_path(path: str = ".") -> str:
    return os.path.join(os.path.abspath(path), CONFIG_DIR, CONFIG_FILE)


def load_config(config_path: str) -> dict:
    """Load config from file, returning empty dict if not found."""
    if not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Failed to load config %s: %s", config_path, e)
        return {}
    return cfg if isinstance(cfg, dict) else {}


def save_config(config_path: str, cfg: dict) -> None:
    os.makedirs(os.path.dirname(config_path), exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(cfg, f, indent=2)


def apply_env_overrides(cfg: dict, environ=None) -> dict:
    """Return cfg with BEACON_* environment variables applied on top."""
    env = os.environ if environ is None else environ
    merged = dict(cfg)
    if "BEACON_VERSION_EXTENSION" in env:
        merged["version_extension"] = env["BEACON_VERSION_EXTENSION"]
    if "BEACON_OFFICIAL_BUILD" in env:
        merged["official_build"] = env["BEACON_OFFICIAL_BUILD"].lower() in _BOOL_TRUE
    if "BEACON_PLATFORM" in env:
        merged["platform"] = env["BEACON_PLATFORM"]
    return merged


def context_from_config(cfg: dict) -> ReportContext:
    official = cfg.get("official_build", False)
    if isinstance(official, str):
        official = official.lower() in _BOOL_TRUE
    return ReportContext(
        app_version=str(cfg.get("app_version", __version__)),
        version_extension=str(cfg.get("version_extension", "")),
        official_build=bool(official),
        platform=str(cfg.get("platform", sys.platform)),
    )
