"""Collaborators that supply facts to the report builder.

All accessors are synchronous and return values already in memory.
The Static* implementations back the CLI and tests; HostEnvironment
reads what the running interpreter can see about this machine.
"""
from __future__ import annotations

import hashlib
import logging
import os
import platform
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PluginInventoryItem:
    """An installed plugin."""
    name: str
    path: str = ""
    version: str = ""
    enabled: bool | None = None

    @property
    def filename(self) -> str:
        return os.path.basename(self.path.replace("\\", "/"))


@dataclass(frozen=True)
class GpuInfo:
    vendor_id: int = 0
    device_id: int = 0
    driver_version: str = ""
    driver_date: str = ""
    graphics_score: float = 0.0
    gaming_score: float = 0.0
    overall_score: float = 0.0


class PluginInventoryProvider:
    def plugins(self) -> list[PluginInventoryItem]:
        raise NotImplementedError

    def is_enabled(self, item: PluginInventoryItem) -> bool | None:
        """Enabled state, or None when the provider has no opinion."""
        return item.enabled


class StaticPluginInventory(PluginInventoryProvider):
    def __init__(self, items: list[PluginInventoryItem] | None = None) -> None:
        self._items = list(items or [])

    def plugins(self) -> list[PluginInventoryItem]:
        return list(self._items)

    @classmethod
    def from_list(cls, data: list[dict]) -> "StaticPluginInventory":
        return cls([
            PluginInventoryItem(
                name=d.get("name", ""),
                path=d.get("path", ""),
                version=d.get("version", ""),
                enabled=d.get("enabled"),
            )
            for d in data
        ])


class EnvironmentFactsProvider:
    def cpu_architecture(self) -> str:
        raise NotImplementedError

    def physical_memory_mb(self) -> int:
        raise NotImplementedError

    def os_name(self) -> str:
        raise NotImplementedError

    def os_version(self) -> str:
        raise NotImplementedError

    def gpu_info(self) -> GpuInfo:
        return GpuInfo()

    def screen_size(self) -> tuple[int, int]:
        return (0, 0)

    def screen_count(self) -> int:
        return 0

    def application_locale(self) -> str:
        return ""


@dataclass
class StaticEnvironment(EnvironmentFactsProvider):
    cpu_arch: str = ""
    memory_mb: int = 0
    os: str = ""
    os_release: str = ""
    gpu: GpuInfo = field(default_factory=GpuInfo)
    display: tuple[int, int] = (0, 0)
    screens: int = 0
    locale: str = ""

    def cpu_architecture(self):
        return self.cpu_arch

    def physical_memory_mb(self):
        return self.memory_mb

    def os_name(self):
        return self.os

    def os_version(self):
        return self.os_release

    def gpu_info(self):
        return self.gpu

    def screen_size(self):
        return self.display

    def screen_count(self):
        return self.screens

    def application_locale(self):
        return self.locale

    @classmethod
    def from_dict(cls, data: dict) -> "StaticEnvironment":
        gpu = data.get("gpu", {})
        display = data.get("display", {})
        return cls(
            cpu_arch=data.get("cpu_architecture", ""),
            memory_mb=int(data.get("memory_mb", 0)),
            os=data.get("os_name", ""),
            os_release=data.get("os_version", ""),
            gpu=GpuInfo(
                vendor_id=int(gpu.get("vendor_id", 0)),
                device_id=int(gpu.get("device_id", 0)),
                driver_version=gpu.get("driver_version", ""),
                driver_date=gpu.get("driver_date", ""),
                graphics_score=float(gpu.get("graphics_score", 0.0)),
                gaming_score=float(gpu.get("gaming_score", 0.0)),
                overall_score=float(gpu.get("overall_score", 0.0)),
            ),
            display=(int(display.get("width", 0)), int(display.get("height", 0))),
            screens=int(display.get("count", 0)),
            locale=data.get("locale", ""),
        )


class HostEnvironment(EnvironmentFactsProvider):
    """Facts about the machine this process runs on.

    GPU and display facts need a windowing system and read as zero.
    """

    def cpu_architecture(self):
        return platform.machine()

    def physical_memory_mb(self):
        try:
            pages = os.sysconf("SC_PHYS_PAGES")
            page_size = os.sysconf("SC_PAGE_SIZE")
        except (AttributeError, ValueError, OSError) as e:
            logger.debug("Physical memory unavailable: %s", e)
            return 0
        return int(pages * page_size // (1024 * 1024))

    def os_name(self):
        return platform.system()

    def os_version(self):
        return platform.release()

    def application_locale(self):
        lang = os.environ.get("LANG", "")
        return lang.split(".")[0].replace("_", "-")


class FieldTrialProvider:
    def field_trials(self) -> list[tuple[int, int]]:
        """Active (name id, group id) pairs."""
        raise NotImplementedError


class StaticFieldTrials(FieldTrialProvider):
    def __init__(self, trials: list[tuple[int, int]] | None = None) -> None:
        self._trials = [(int(n), int(g)) for n, g in (trials or [])]

    def field_trials(self):
        return list(self._trials)


def trial_name_id(name: str) -> int:
    """32-bit id for a trial or group name: first 4 SHA-1 bytes, little-endian."""
    digest = hashlib.sha1(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "little")


def field_trials_from_names(pairs: list[dict]) -> StaticFieldTrials:
    """Build a provider from [{"name": ..., "group": ...}] entries."""
    return StaticFieldTrials([
        (trial_name_id(p["name"]), trial_name_id(p["group"])) for p in pairs
    ])
