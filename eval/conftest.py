"""Shared fixtures for report builder tests."""
import pytest

from beacon.config import ReportContext
from beacon.prefs import PreferenceStore
from beacon.providers import (
    GpuInfo, PluginInventoryItem, StaticEnvironment, StaticFieldTrials,
)
from beacon.report.builder import ReportBuilder


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(clock):
    return ReportContext(app_version="21.0.1180.0", official_build=True,
                         platform="linux", clock=clock)


@pytest.fixture
def pref_store():
    return PreferenceStore()


@pytest.fixture
def environment():
    return StaticEnvironment(
        cpu_arch="x86_64",
        memory_mb=8192,
        os="Linux",
        os_release="6.1.0",
        gpu=GpuInfo(vendor_id=0x10DE, device_id=0x1234, driver_version="535.1",
                    driver_date="2023-06-01", graphics_score=5.5,
                    gaming_score=4.0, overall_score=4.75),
        display=(1920, 1080),
        screens=2,
        locale="en-US",
    )


@pytest.fixture
def plugins():
    return [
        PluginInventoryItem(name="Foo", path="/usr/lib/plugins/libfoo.so",
                            version="1.0", enabled=True),
        PluginInventoryItem(name="Shockwave", path="/opt/sw/libsw.so",
                            version="11.2", enabled=False),
    ]


@pytest.fixture
def make_builder(pref_store, context, environment):
    def _make(**overrides):
        kwargs = {
            "client_id": "client-abc",
            "session_id": 7,
            "pref_store": pref_store,
            "context": context,
            "environment": environment,
            "field_trials": StaticFieldTrials([(101, 1), (202, 3)]),
        }
        kwargs.update(overrides)
        return ReportBuilder(**kwargs)
    return _make
