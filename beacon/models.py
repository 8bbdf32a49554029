from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

from beacon import prefs
from beacon.errors import DataQualityFault
from beacon.report.record import UserMetrics, to_dict
from beacon.report.sections import SectionStack


@dataclass(frozen=True)
class PluginUsageRecord:
    """Per-plugin counters persisted since the last report."""
    name: str
    launches: int = 0
    instances: int = 0
    crashes: int = 0

    @classmethod
    def from_pref(cls, data: dict) -> "PluginUsageRecord":
        return cls(
            name=str(data.get(prefs.STABILITY_PLUGIN_NAME, "")),
            launches=int(data.get(prefs.STABILITY_PLUGIN_LAUNCHES, 0) or 0),
            instances=int(data.get(prefs.STABILITY_PLUGIN_INSTANCES, 0) or 0),
            crashes=int(data.get(prefs.STABILITY_PLUGIN_CRASHES, 0) or 0),
        )


@dataclass(frozen=True)
class PluginStabilityEntry:
    """A usage record joined with its installed plugin.

    Carries the anonymized name token, never the raw plugin name.
    """
    name_token: str
    filename_token: str
    version: str
    launch_count: int
    instance_count: int
    crash_count: int
    is_disabled: bool | None = None


@dataclass
class Report:
    """One reporting period, in both encodings.

    Owned by the ReportBuilder until close(); immutable afterwards.
    """
    client_id: str
    session_id: int
    app_version: str
    sections: SectionStack = field(default_factory=SectionStack)
    record: UserMetrics = field(default_factory=UserMetrics)
    num_events: int = 0
    faults: list[DataQualityFault] = field(default_factory=list)
    plugin_stability: list[PluginStabilityEntry] = field(default_factory=list)
    field_trials: tuple[tuple[int, int], ...] = ()
    locked: bool = False

    @property
    def integrity_fault_count(self) -> int:
        return len(self.faults)

    def lock(self) -> None:
        self.locked = True

    def legacy_element(self) -> ET.Element:
        root = ET.Element("log", attrib={
            "clientid": self.client_id,
            "appversion": self.app_version,
        })
        for section in self.sections.root_sections():
            root.append(self.sections.to_element(section))
        return root

    def legacy_xml(self) -> str:
        return ET.tostring(self.legacy_element(), encoding="unicode")

    def structured_dict(self) -> dict:
        return to_dict(self.record)

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.structured_dict(), indent=indent)
