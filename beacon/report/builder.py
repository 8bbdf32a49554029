"""Report builder: assembles one Report from prefs, providers and events.

Every fact goes through a single DualEncoder call, so the legacy tree
and the structured record are filled from the same value in the same
pass. Counters are read-and-reset exactly once per report; reading
them twice (once per encoding) would hand the second encoding zeros.
"""
from __future__ import annotations

import functools
import logging
from typing import Any

from beacon import prefs
from beacon.anonymize import anonymize, create_hashes
from beacon.config import ReportContext
from beacon.errors import DataQualityFault, ProgrammingFault
from beacon.models import PluginStabilityEntry, PluginUsageRecord, Report
from beacon.prefs import CounterStore, PreferenceStore
from beacon.providers import (
    EnvironmentFactsProvider, FieldTrialProvider, PluginInventoryItem,
    PluginInventoryProvider, StaticEnvironment, StaticFieldTrials,
)
from beacon.report.encoders import (
    INT32_MAX, INT32_MIN, DualEncoder, Field, LegacySink, StructuredSink,
)
from beacon.report.events import HistogramSample, OmniboxEvent, ProviderType

logger = logging.getLogger(__name__)

# (pref, legacy attribute, structured field). Legacy None = structured only.
REQUIRED_STABILITY_COUNTERS = (
    (prefs.STABILITY_LAUNCH_COUNT, "launchcount", "launch_count"),
    (prefs.STABILITY_CRASH_COUNT, "crashcount", "crash_count"),
)

REALTIME_STABILITY_COUNTERS = (
    (prefs.STABILITY_PAGE_LOAD_COUNT, "pageloadcount", "page_load_count"),
    (prefs.STABILITY_RENDERER_CRASH_COUNT, "renderercrashcount", "renderer_crash_count"),
    (prefs.STABILITY_EXTENSION_RENDERER_CRASH_COUNT, "extensionrenderercrashcount",
     "extension_renderer_crash_count"),
    (prefs.STABILITY_RENDERER_HANG_COUNT, "rendererhangcount", "renderer_hang_count"),
    (prefs.STABILITY_CHILD_PROCESS_CRASH_COUNT, "childprocesscrashcount",
     "child_process_crash_count"),
)

OS_CRASH_COUNTERS = (
    (prefs.STABILITY_OTHER_USER_CRASH_COUNT, None, "other_user_crash_count"),
    (prefs.STABILITY_KERNEL_CRASH_COUNT, None, "kernel_crash_count"),
    (prefs.STABILITY_SYSTEM_UNCLEAN_SHUTDOWN_COUNT, None, "unclean_system_shutdown_count"),
)

SESSION_END_COUNTERS = (
    (prefs.STABILITY_INCOMPLETE_SESSION_END_COUNT, "incompleteshutdowncount",
     "incomplete_shutdown_count"),
    (prefs.STABILITY_BREAKPAD_REGISTRATION_SUCCESS, "breakpadregistrationok",
     "breakpad_registration_success_count"),
    (prefs.STABILITY_BREAKPAD_REGISTRATION_FAIL, "breakpadregistrationfail",
     "breakpad_registration_failure_count"),
    (prefs.STABILITY_DEBUGGER_PRESENT, "debuggerpresent", "debugger_present_count"),
    (prefs.STABILITY_DEBUGGER_NOT_PRESENT, "debuggernotpresent",
     "debugger_not_present_count"),
)

UNMATCHED_PLUGIN = "unmatched_plugin"
MALFORMED_PLUGIN_RECORD = "malformed_plugin_record"


def _record_operation(method):
    """Guard for public record operations.

    Refuses to run on a locked or aborted report, and marks the build
    aborted when the operation raises, so a half-written report is
    never handed over.
    """
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if self.report.locked:
            raise ProgrammingFault(f"{method.__name__}() called on a locked report")
        if self.aborted:
            raise ProgrammingFault(f"{method.__name__}() called after the build aborted")
        try:
            return method(self, *args, **kwargs)
        except Exception:
            self.aborted = True
            raise
    return wrapper


def _find_plugin(plugin_list: list[PluginInventoryItem], name: str) -> PluginInventoryItem | None:
    # Linear scan; installs carry a handful of plugins. First match wins.
    for item in plugin_list:
        if item.name == name:
            return item
    return None


def _parse_install_date(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug("Unparseable install date %r, using 0", value)
        return 0


def _check_all_profiles_metrics(all_profiles_metrics: dict[str, Any]) -> None:
    """Reject unencodable profile metrics before any counter is consumed."""
    for key, metrics in all_profiles_metrics.items():
        if not key.startswith(prefs.PROFILE_PREFIX) or not isinstance(metrics, dict):
            continue
        for name, value in metrics.items():
            if name == "id":
                raise ProgrammingFault("Profile metrics must not carry a raw 'id'")
            if not isinstance(value, (bool, int, str)):
                logger.error(
                    "Profile metric %r has unsupported type %s",
                    name, type(value).__name__,
                )
                raise ProgrammingFault(
                    f"Profile metric {name!r} has unsupported type {type(value).__name__}"
                )
            if isinstance(value, int) and not INT32_MIN <= value <= INT32_MAX:
                raise ProgrammingFault(f"Profile metric {name!r} out of range: {value}")


class ReportBuilder:
    """Builds a single Report. Open until close(), then locked."""

    def __init__(
        self,
        client_id: str,
        session_id: int,
        pref_store: PreferenceStore,
        context: ReportContext | None = None,
        environment: EnvironmentFactsProvider | None = None,
        field_trials: FieldTrialProvider | None = None,
        plugin_inventory: PluginInventoryProvider | None = None,
    ) -> None:
        self.context = context or ReportContext()
        self.prefs = pref_store
        self.counters = CounterStore(pref_store)
        self.environment = environment or StaticEnvironment()
        self.field_trials = field_trials or StaticFieldTrials()
        self.plugin_inventory = plugin_inventory
        self.aborted = False
        self._start = self.context.clock()

        self.report = Report(
            client_id=client_id,
            session_id=session_id,
            app_version=self.context.version_string(),
        )
        self.report.record.client_id = client_id
        self.report.record.session_id = session_id
        self.report.record.system_profile.app_version = self.report.app_version
        self._out = DualEncoder(LegacySink(self.report.sections), StructuredSink())

    @property
    def locked(self) -> bool:
        return self.report.locked

    @property
    def num_events(self) -> int:
        return self.report.num_events

    def close(self) -> Report:
        """Lock the report and hand it over for upload."""
        if self.aborted:
            raise ProgrammingFault("Report build aborted; nothing to hand over")
        if self.report.locked:
            raise ProgrammingFault("Report is already closed")
        self.report.lock()
        logger.debug(
            "Closed report session=%s events=%d faults=%d",
            self.report.session_id, self.report.num_events, self.report.integrity_fault_count,
        )
        return self.report

    # ── public record operations ─────────────────────────────────────

    @_record_operation
    def record_environment(
        self,
        plugin_list: list[PluginInventoryItem],
        profile_metrics: dict[str, Any] | None = None,
    ) -> None:
        """Snapshot the full environment: install, plugins, stability, hardware."""
        if profile_metrics:
            _check_all_profiles_metrics(profile_metrics)

        out = self._out
        system_profile = self.report.record.system_profile
        hardware = system_profile.hardware
        env = self.environment

        with out.section("profile"):
            self._write_common_event_attributes()
            self._write_install_element(structured=True)

            out.write_attribute(None, env.application_locale(),
                                Field(system_profile, "application_locale"))

            self._write_plugin_list(plugin_list)
            self._write_stability_element(plugin_list)

            with out.section("cpu"):
                out.write_attribute("arch", env.cpu_architecture(),
                                    Field(hardware, "cpu_architecture"))

            with out.section("memory"):
                out.write_int_attribute("mb", env.physical_memory_mb(),
                                        Field(hardware, "system_ram_mb"))

            with out.section("os"):
                out.write_attribute("name", env.os_name(), Field(system_profile.os, "name"))
                out.write_attribute("version", env.os_version(),
                                    Field(system_profile.os, "version"))

            self._write_gpu(env)
            self._write_display(env)
            self._write_bookmarks()

            with out.section("keywords"):
                out.write_int_attribute("count", self.prefs.get_integer(prefs.NUM_KEYWORDS))

            if profile_metrics:
                self._write_all_profiles_metrics(profile_metrics)

        self._write_field_trials()

    @_record_operation
    def record_incremental_stability_elements(self, plugin_list: list[PluginInventoryItem]) -> None:
        """Minimal stability report, used when recovering from a crash."""
        out = self._out
        with out.section("profile"):
            self._write_common_event_attributes()
            self._write_install_element(structured=False)
            with out.section("stability"):
                self._write_required_stability_attributes()
                self._write_realtime_stability_attributes()
                self._write_plugin_stability_elements(plugin_list)

    @_record_operation
    def record_usage_event(self, event: OmniboxEvent) -> None:
        out = self._out
        proto = self.report.record.add_omnibox_event()

        with out.section("uielement"):
            out.write_attribute("action", "autocomplete")
            out.write_attribute("targetidhash", "")
            out.write_int_attribute("window", 0)
            if event.tab_id is not None:
                out.write_int_attribute("tab", event.tab_id, Field(proto, "tab_id"))
            self._write_common_event_attributes(time_field=Field(proto, "time"))

            with out.section("autocomplete"):
                out.write_int_attribute("typedlength", event.typed_length,
                                        Field(proto, "typed_length"))
                out.write_int_attribute("numterms", event.num_terms,
                                        Field(proto, "num_typed_terms"))
                out.write_int_attribute("selectedindex", event.selected_index,
                                        Field(proto, "selected_index"))
                out.write_int_attribute("completedlength", event.inline_autocompleted_length,
                                        Field(proto, "completed_length"))
                if event.typing_duration_ms is not None:
                    out.write_int64_attribute("typingduration", event.typing_duration_ms,
                                              Field(proto, "typing_duration_ms"))
                if event.input_type.value:
                    out.write_attribute("inputtype", event.input_type.value)
                out.write_attribute(None, event.input_type.name, Field(proto, "input_type"))

                for suggestion in event.suggestions:
                    self._write_suggestion(proto.add_suggestion(), suggestion)

        self.report.num_events += 1

    @_record_operation
    def record_histogram_delta(self, sample: HistogramSample) -> None:
        out = self._out
        token, name_hash = create_hashes(sample.name)
        event = self.report.record.add_histogram_event()

        with out.section("histogram"):
            out.write_attribute("name", token)
            out.write_attribute(None, name_hash, Field(event, "name_hash"))
            out.write_int64_attribute("sum", sample.sum, Field(event, "sum"))
            for index, bucket in enumerate(sample.buckets):
                if not bucket.count:
                    continue
                proto_bucket = event.add_bucket()
                with out.section("histogrambucket"):
                    out.write_int64_attribute("min", bucket.min, Field(proto_bucket, "min"))
                    out.write_int64_attribute("max", bucket.max, Field(proto_bucket, "max"))
                    out.write_int_attribute(None, index, Field(proto_bucket, "bucket_index"))
                    out.write_int64_attribute("count", bucket.count, Field(proto_bucket, "count"))

        self.report.num_events += sample.total_count

    # ── shared elements ──────────────────────────────────────────────

    def _elapsed_seconds(self) -> int:
        return int(self.context.clock() - self._start)

    def _write_common_event_attributes(self, time_field: Field | None = None) -> None:
        self._out.write_int_attribute("session", self.report.session_id)
        self._out.write_int64_attribute("time", self._elapsed_seconds(), time_field)

    def _write_install_element(self, structured: bool) -> None:
        out = self._out
        install_date = self.prefs.get_string(prefs.METRICS_CLIENT_ID_TIMESTAMP) or "0"
        with out.section("install"):
            out.write_attribute("installdate", install_date)
            out.write_int_attribute("buildid", 0)
        if structured:
            out.write_int64_attribute(
                None, _parse_install_date(install_date),
                Field(self.report.record.system_profile, "install_date"),
            )

    def _plugin_enabled(self, item: PluginInventoryItem) -> bool | None:
        if self.plugin_inventory is not None:
            return self.plugin_inventory.is_enabled(item)
        return item.enabled

    def _write_plugin_list(self, plugin_list: list[PluginInventoryItem]) -> None:
        # Names and file names are hashed: unreleased plugins under test
        # must not be identifiable from a report.
        out = self._out
        system_profile = self.report.record.system_profile
        with out.section("plugins"):
            for item in plugin_list:
                plugin = system_profile.add_plugin()
                with out.section("plugin"):
                    out.write_attribute("name", anonymize(item.name), Field(plugin, "name"))
                    out.write_attribute("filename", anonymize(item.filename),
                                        Field(plugin, "filename"))
                    out.write_attribute("version", item.version, Field(plugin, "version"))
                    enabled = self._plugin_enabled(item)
                    if enabled is not None:
                        out.write_int_attribute("disabled", not enabled,
                                                Field(plugin, "is_disabled"))

    # ── stability ────────────────────────────────────────────────────

    def _write_stability_element(self, plugin_list: list[PluginInventoryItem]) -> None:
        # NOTE: counters are zeroed as they are read. If this report
        # never reaches the server those counts are gone.
        out = self._out
        stability = self.report.record.system_profile.stability
        with out.section("stability"):
            self._write_required_stability_attributes()
            self._write_realtime_stability_attributes()
            for pref_name, attr, field_name in SESSION_END_COUNTERS:
                count = self.counters.read_and_reset(pref_name)
                out.write_int_attribute(attr, count, Field(stability, field_name))
            self._write_plugin_stability_elements(plugin_list)

    def _write_required_stability_attributes(self) -> None:
        # The server rejects a stability element without these two,
        # so they are written even when zero.
        stability = self.report.record.system_profile.stability
        for pref_name, attr, field_name in REQUIRED_STABILITY_COUNTERS:
            count = self.counters.read_and_reset(pref_name)
            self._out.write_int_attribute(attr, count, Field(stability, field_name))

    def _write_realtime_stability_attributes(self) -> None:
        # Summed server side, so zeros carry no information.
        out = self._out
        stability = self.report.record.system_profile.stability
        counters = REALTIME_STABILITY_COUNTERS
        if self.context.reports_os_crashes:
            counters = counters + OS_CRASH_COUNTERS
        for pref_name, attr, field_name in counters:
            count = self.counters.read_and_reset(pref_name)
            if count:
                out.write_int_attribute(attr, count, Field(stability, field_name))

        recent_duration = self.context.incremental_uptime()
        if recent_duration:
            self.counters.accumulate_uptime(recent_duration)
            out.write_int64_attribute("uptimesec", recent_duration, Field(stability, "uptime_sec"))

    def _write_plugin_stability_elements(self, plugin_list: list[PluginInventoryItem]) -> None:
        raw_records = self.counters.take_plugin_usage()
        if not raw_records:
            return

        out = self._out
        stability = self.report.record.system_profile.stability
        with out.section("plugins"):
            for raw in raw_records:
                if not isinstance(raw, dict):
                    self._add_fault(MALFORMED_PLUGIN_RECORD, f"{type(raw).__name__} entry")
                    continue
                try:
                    record = PluginUsageRecord.from_pref(raw)
                except (TypeError, ValueError) as e:
                    self._add_fault(MALFORMED_PLUGIN_RECORD, f"unparseable counts: {e}")
                    continue
                item = _find_plugin(plugin_list, record.name)
                if item is None:
                    self._add_fault(
                        UNMATCHED_PLUGIN,
                        f"no installed plugin for usage record {anonymize(record.name)}",
                    )
                    continue
                self._write_plugin_stability(stability.add_plugin_stability(), record, item)

    def _write_plugin_stability(self, entry, record: PluginUsageRecord, item: PluginInventoryItem) -> None:
        out = self._out
        token = anonymize(record.name)
        filename_token = anonymize(item.filename)
        enabled = self._plugin_enabled(item)

        with out.section("pluginstability"):
            # Legacy servers key this element on "filename".
            out.write_attribute("filename", token, Field(entry.plugin, "name"))
            out.write_attribute(None, filename_token, Field(entry.plugin, "filename"))
            out.write_attribute(None, item.version, Field(entry.plugin, "version"))
            if enabled is not None:
                out.write_attribute(None, not enabled, Field(entry.plugin, "is_disabled"))
            out.write_int_attribute("launchcount", record.launches, Field(entry, "launch_count"))
            out.write_int_attribute("instancecount", record.instances,
                                    Field(entry, "instance_count"))
            out.write_int_attribute("crashcount", record.crashes, Field(entry, "crash_count"))

        self.report.plugin_stability.append(PluginStabilityEntry(
            name_token=token,
            filename_token=filename_token,
            version=item.version,
            launch_count=record.launches,
            instance_count=record.instances,
            crash_count=record.crashes,
            is_disabled=None if enabled is None else not enabled,
        ))

    def _add_fault(self, kind: str, detail: str) -> None:
        logger.warning("Data quality fault (%s): %s", kind, detail)
        self.report.faults.append(DataQualityFault(kind=kind, detail=detail))

    # ── hardware / profile ───────────────────────────────────────────

    def _write_gpu(self, env: EnvironmentFactsProvider) -> None:
        out = self._out
        gpu = self.report.record.system_profile.hardware.gpu
        perf = gpu.performance_statistics
        info = env.gpu_info()
        with out.section("gpu"):
            out.write_int_attribute("vendorid", info.vendor_id, Field(gpu, "vendor_id"))
            out.write_int_attribute("deviceid", info.device_id, Field(gpu, "device_id"))
        out.write_attribute(None, info.driver_version, Field(gpu, "driver_version"))
        out.write_attribute(None, info.driver_date, Field(gpu, "driver_date"))
        out.write_attribute(None, info.graphics_score, Field(perf, "graphics_score"))
        out.write_attribute(None, info.gaming_score, Field(perf, "gaming_score"))
        out.write_attribute(None, info.overall_score, Field(perf, "overall_score"))

    def _write_display(self, env: EnvironmentFactsProvider) -> None:
        out = self._out
        hardware = self.report.record.system_profile.hardware
        width, height = env.screen_size()
        with out.section("display"):
            out.write_int_attribute("xsize", width, Field(hardware, "primary_screen_width"))
            out.write_int_attribute("ysize", height, Field(hardware, "primary_screen_height"))
            out.write_int_attribute("screens", env.screen_count(), Field(hardware, "screen_count"))

    def _write_bookmarks(self) -> None:
        out = self._out
        bar_items = self.prefs.get_integer(prefs.NUM_BOOKMARKS_ON_BOOKMARK_BAR)
        bar_folders = self.prefs.get_integer(prefs.NUM_FOLDERS_ON_BOOKMARK_BAR)
        other_items = self.prefs.get_integer(prefs.NUM_BOOKMARKS_IN_OTHER_BOOKMARK_FOLDER)
        other_folders = self.prefs.get_integer(prefs.NUM_FOLDERS_IN_OTHER_BOOKMARK_FOLDER)

        with out.section("bookmarks"):
            with out.section("bookmarklocation"):
                out.write_attribute("name", "full-tree")
                out.write_int_attribute("foldercount", bar_folders + other_folders)
                out.write_int_attribute("itemcount", bar_items + other_items)
            with out.section("bookmarklocation"):
                out.write_attribute("name", "toolbar")
                out.write_int_attribute("foldercount", bar_folders)
                out.write_int_attribute("itemcount", bar_items)

    def _write_all_profiles_metrics(self, all_profiles_metrics: dict[str, Any]) -> None:
        for key, metrics in all_profiles_metrics.items():
            if key.startswith(prefs.PROFILE_PREFIX) and isinstance(metrics, dict):
                self._write_profile_metrics(key[len(prefs.PROFILE_PREFIX):], metrics)

    def _write_profile_metrics(self, profile_id_hash: str, metrics: dict[str, Any]) -> None:
        out = self._out
        with out.section("userprofile"):
            out.write_attribute("profileidhash", profile_id_hash)
            for name, value in metrics.items():
                # bool before int: bool is an int subclass
                if isinstance(value, bool):
                    value = 1 if value else 0
                with out.section("profileparam"):
                    out.write_attribute("name", name)
                    if isinstance(value, str):
                        out.write_attribute("value", value)
                    else:
                        out.write_int_attribute("value", value)

    def _write_field_trials(self) -> None:
        trials = tuple(self.field_trials.field_trials())
        system_profile = self.report.record.system_profile
        for name_id, group_id in trials:
            trial = system_profile.add_field_trial()
            self._out.write_int64_attribute(None, name_id, Field(trial, "name_id"))
            self._out.write_int64_attribute(None, group_id, Field(trial, "group_id"))
        self.report.field_trials = trials

    def _write_suggestion(self, proto, suggestion) -> None:
        out = self._out
        provider = suggestion.provider
        with out.section("autocompleteitem"):
            if provider is not None and provider.value:
                out.write_attribute("provider", provider.value)
            structured_provider = (provider or ProviderType.UNKNOWN_PROVIDER).name
            out.write_attribute(None, structured_provider, Field(proto, "provider"))
            if suggestion.result_type.value:
                out.write_attribute("resulttype", suggestion.result_type.value)
            out.write_attribute(None, suggestion.result_type.name, Field(proto, "result_type"))
            out.write_int_attribute("relevance", suggestion.relevance, Field(proto, "relevance"))
            out.write_int_attribute("isstarred", suggestion.starred, Field(proto, "is_starred"))
