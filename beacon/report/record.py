"""Structured report record.

Mirrors the upload schema message-for-message. Scalar fields default to
None, meaning "not set": unset fields are omitted from the serialized
record, the same way an optional protobuf field is.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Optional

SCHEMA_VERSION = "1.3"


def to_dict(message: Any) -> Any:
    """Serialize a record tree, dropping unset fields and empty lists."""
    if is_dataclass(message):
        out: dict[str, Any] = {}
        for f in fields(message):
            value = getattr(message, f.name)
            if value is None:
                continue
            if isinstance(value, list) and not value:
                continue
            converted = to_dict(value)
            if isinstance(converted, dict) and not converted:
                continue
            out[f.name] = converted
        return out
    if isinstance(message, list):
        return [to_dict(item) for item in message]
    if hasattr(message, "value"):
        return message.value
    return message


@dataclass
class PerformanceStatistics:
    graphics_score: Optional[float] = None
    gaming_score: Optional[float] = None
    overall_score: Optional[float] = None


@dataclass
class Graphics:
    vendor_id: Optional[int] = None
    device_id: Optional[int] = None
    driver_version: Optional[str] = None
    driver_date: Optional[str] = None
    performance_statistics: PerformanceStatistics = field(default_factory=PerformanceStatistics)


@dataclass
class Hardware:
    cpu_architecture: Optional[str] = None
    system_ram_mb: Optional[int] = None
    primary_screen_width: Optional[int] = None
    primary_screen_height: Optional[int] = None
    screen_count: Optional[int] = None
    gpu: Graphics = field(default_factory=Graphics)


@dataclass
class OS:
    name: Optional[str] = None
    version: Optional[str] = None


@dataclass
class Plugin:
    name: Optional[str] = None
    filename: Optional[str] = None
    version: Optional[str] = None
    is_disabled: Optional[bool] = None


@dataclass
class PluginStability:
    plugin: Plugin = field(default_factory=Plugin)
    launch_count: Optional[int] = None
    instance_count: Optional[int] = None
    crash_count: Optional[int] = None


@dataclass
class Stability:
    uptime_sec: Optional[int] = None
    page_load_count: Optional[int] = None
    renderer_crash_count: Optional[int] = None
    renderer_hang_count: Optional[int] = None
    extension_renderer_crash_count: Optional[int] = None
    child_process_crash_count: Optional[int] = None
    other_user_crash_count: Optional[int] = None
    kernel_crash_count: Optional[int] = None
    unclean_system_shutdown_count: Optional[int] = None
    launch_count: Optional[int] = None
    crash_count: Optional[int] = None
    incomplete_shutdown_count: Optional[int] = None
    breakpad_registration_success_count: Optional[int] = None
    breakpad_registration_failure_count: Optional[int] = None
    debugger_present_count: Optional[int] = None
    debugger_not_present_count: Optional[int] = None
    plugin_stability: list[PluginStability] = field(default_factory=list)

    def add_plugin_stability(self) -> PluginStability:
        entry = PluginStability()
        self.plugin_stability.append(entry)
        return entry


@dataclass
class FieldTrial:
    name_id: Optional[int] = None
    group_id: Optional[int] = None


@dataclass
class SystemProfile:
    install_date: Optional[int] = None
    application_locale: Optional[str] = None
    app_version: Optional[str] = None
    hardware: Hardware = field(default_factory=Hardware)
    os: OS = field(default_factory=OS)
    plugin: list[Plugin] = field(default_factory=list)
    stability: Stability = field(default_factory=Stability)
    field_trial: list[FieldTrial] = field(default_factory=list)

    def add_plugin(self) -> Plugin:
        plugin = Plugin()
        self.plugin.append(plugin)
        return plugin

    def add_field_trial(self) -> FieldTrial:
        trial = FieldTrial()
        self.field_trial.append(trial)
        return trial


@dataclass
class Suggestion:
    provider: Optional[str] = None
    result_type: Optional[str] = None
    relevance: Optional[int] = None
    is_starred: Optional[bool] = None


@dataclass
class OmniboxEvent:
    time: Optional[int] = None
    tab_id: Optional[int] = None
    typed_length: Optional[int] = None
    num_typed_terms: Optional[int] = None
    selected_index: Optional[int] = None
    completed_length: Optional[int] = None
    typing_duration_ms: Optional[int] = None
    input_type: Optional[str] = None
    suggestion: list[Suggestion] = field(default_factory=list)

    def add_suggestion(self) -> Suggestion:
        suggestion = Suggestion()
        self.suggestion.append(suggestion)
        return suggestion


@dataclass
class Bucket:
    min: Optional[int] = None
    max: Optional[int] = None
    bucket_index: Optional[int] = None
    count: Optional[int] = None


@dataclass
class HistogramEvent:
    name_hash: Optional[int] = None
    sum: Optional[int] = None
    bucket: list[Bucket] = field(default_factory=list)

    def add_bucket(self) -> Bucket:
        bucket = Bucket()
        self.bucket.append(bucket)
        return bucket


@dataclass
class UserMetrics:
    """Root of the structured encoding."""
    client_id: Optional[str] = None
    session_id: Optional[int] = None
    schema_version: str = SCHEMA_VERSION
    system_profile: SystemProfile = field(default_factory=SystemProfile)
    omnibox_event: list[OmniboxEvent] = field(default_factory=list)
    histogram_event: list[HistogramEvent] = field(default_factory=list)

    def add_omnibox_event(self) -> OmniboxEvent:
        event = OmniboxEvent()
        self.omnibox_event.append(event)
        return event

    def add_histogram_event(self) -> HistogramEvent:
        event = HistogramEvent()
        self.histogram_event.append(event)
        return event
