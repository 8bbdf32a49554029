"""Persisted preferences and the read-and-reset counter store.

The preference store is shared across reporting periods and may be
touched from several threads (crash handlers, the UI loop, the report
builder). Every mutation happens under one re-entrant lock so that a
read-and-reset can never lose or double-read a concurrent increment.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Stability counters
STABILITY_LAUNCH_COUNT = "stability.launch_count"
STABILITY_CRASH_COUNT = "stability.crash_count"
STABILITY_INCOMPLETE_SESSION_END_COUNT = "stability.incomplete_session_end_count"
STABILITY_BREAKPAD_REGISTRATION_SUCCESS = "stability.breakpad_registration_ok"
STABILITY_BREAKPAD_REGISTRATION_FAIL = "stability.breakpad_registration_fail"
STABILITY_DEBUGGER_PRESENT = "stability.debugger_present"
STABILITY_DEBUGGER_NOT_PRESENT = "stability.debugger_not_present"
STABILITY_PAGE_LOAD_COUNT = "stability.page_load_count"
STABILITY_RENDERER_CRASH_COUNT = "stability.renderer_crash_count"
STABILITY_EXTENSION_RENDERER_CRASH_COUNT = "stability.extension_renderer_crash_count"
STABILITY_RENDERER_HANG_COUNT = "stability.renderer_hang_count"
STABILITY_CHILD_PROCESS_CRASH_COUNT = "stability.child_process_crash_count"
STABILITY_OTHER_USER_CRASH_COUNT = "stability.other_user_crash_count"
STABILITY_KERNEL_CRASH_COUNT = "stability.kernel_crash_count"
STABILITY_SYSTEM_UNCLEAN_SHUTDOWN_COUNT = "stability.system_unclean_shutdowns"

# Plugin usage, a list of {name, launches, instances, crashes} dicts
STABILITY_PLUGIN_STATS = "stability.plugin_stats"
STABILITY_PLUGIN_NAME = "name"
STABILITY_PLUGIN_LAUNCHES = "launches"
STABILITY_PLUGIN_INSTANCES = "instances"
STABILITY_PLUGIN_CRASHES = "crashes"

# Install / lifetime facts
METRICS_CLIENT_ID_TIMESTAMP = "user_experience_metrics.client_id_timestamp"
UNINSTALL_METRICS_UPTIME_SEC = "uninstall_metrics.uptime_sec"

# Bookmarks and keywords
NUM_BOOKMARKS_ON_BOOKMARK_BAR = "user_experience_metrics.num_bookmarks_on_bookmark_bar"
NUM_FOLDERS_ON_BOOKMARK_BAR = "user_experience_metrics.num_folders_on_bookmark_bar"
NUM_BOOKMARKS_IN_OTHER_BOOKMARK_FOLDER = "user_experience_metrics.num_bookmarks_in_other_bookmark_folder"
NUM_FOLDERS_IN_OTHER_BOOKMARK_FOLDER = "user_experience_metrics.num_folders_in_other_bookmark_folder"
NUM_KEYWORDS = "user_experience_metrics.num_keywords"

# Prefix of per-profile entries in the profile metrics dictionary
PROFILE_PREFIX = "profile-"


def _as_int(name: str, value: Any) -> int:
    """Read a stored counter; values that do not parse read as zero."""
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        logger.debug("Pref %s holds non-integer %r, reading 0", name, value)
        return 0


class PreferenceStore:
    """In-memory key/value store with JSON persistence.

    Values are ints, strings or lists of dicts. Missing keys read as
    zero / empty rather than raising.
    """

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})
        self._lock = threading.RLock()

    # ── scalar access ────────────────────────────────────────────────

    def get_integer(self, name: str) -> int:
        with self._lock:
            return _as_int(name, self._values.get(name))

    def set_integer(self, name: str, value: int) -> None:
        with self._lock:
            self._values[name] = int(value)

    # Python ints are unbounded; the int64 accessors exist so call
    # sites read the same as the counters they describe.
    get_int64 = get_integer
    set_int64 = set_integer

    def get_string(self, name: str) -> str:
        with self._lock:
            value = self._values.get(name, "")
            return "" if value is None else str(value)

    def set_string(self, name: str, value: str) -> None:
        with self._lock:
            self._values[name] = str(value)

    def exchange(self, name: str, value: Any) -> Any:
        """Store value and return the previous one, in one critical section."""
        with self._lock:
            previous = self._values.get(name)
            self._values[name] = value
            return previous

    def update(self, name: str, fn: Callable[[Any], Any]) -> Any:
        """Replace the value with fn(old) atomically. Returns the new value."""
        with self._lock:
            new_value = fn(self._values.get(name))
            self._values[name] = new_value
            return new_value

    def clear_pref(self, name: str) -> None:
        with self._lock:
            self._values.pop(name, None)

    def take(self, name: str) -> Any:
        """Remove the pref and return its value, in one critical section."""
        with self._lock:
            return self._values.pop(name, None)

    def has_pref(self, name: str) -> bool:
        with self._lock:
            return name in self._values

    # ── list access ──────────────────────────────────────────────────

    def get_list(self, name: str) -> list:
        """Return a copy of a list pref. Non-list values read as empty."""
        with self._lock:
            value = self._values.get(name)
            if not isinstance(value, list):
                return []
            return [dict(item) if isinstance(item, dict) else item for item in value]

    def append_to_list(self, name: str, item: Any) -> None:
        with self._lock:
            current = self._values.get(name)
            if not isinstance(current, list):
                current = []
                self._values[name] = current
            current.append(item)

    # ── persistence ──────────────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return json.loads(json.dumps(self._values))

    @classmethod
    def load(cls, path: str) -> "PreferenceStore":
        """Load prefs from a JSON file. Unreadable files give an empty store."""
        if not os.path.exists(path):
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug("Failed to load prefs from %s: %s", path, e)
            return cls()
        if not isinstance(data, dict):
            logger.debug("Prefs file %s is not a JSON object", path)
            return cls()
        return cls(data)

    def save(self, path: str) -> None:
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.snapshot(), f, indent=2, sort_keys=True)


class CounterStore:
    """Read-and-reset accessor over named integer counters."""

    def __init__(self, prefs: PreferenceStore) -> None:
        self.prefs = prefs

    def read_and_reset(self, name: str) -> int:
        """Return the counter's value and leave zero behind, atomically."""
        previous = self.prefs.exchange(name, 0)
        return _as_int(name, previous)

    def increment(self, name: str, delta: int = 1) -> int:
        return self.prefs.update(name, lambda old: _as_int(name, old) + delta)

    def value(self, name: str) -> int:
        return self.prefs.get_integer(name)

    def accumulate_uptime(self, seconds: int) -> int:
        """Add to the lifetime uptime pref. Non-positive deltas are ignored."""
        if seconds <= 0:
            return self.value(UNINSTALL_METRICS_UPTIME_SEC)
        return self.increment(UNINSTALL_METRICS_UPTIME_SEC, seconds)

    # ── plugin usage records ─────────────────────────────────────────

    def record_plugin_event(
        self,
        name: str,
        launches: int = 0,
        instances: int = 0,
        crashes: int = 0,
    ) -> None:
        """Accumulate usage counts onto the record for plugin `name`."""
        def _merge(old):
            records = list(old) if isinstance(old, list) else []
            for record in records:
                if isinstance(record, dict) and record.get(STABILITY_PLUGIN_NAME) == name:
                    record[STABILITY_PLUGIN_LAUNCHES] = record.get(STABILITY_PLUGIN_LAUNCHES, 0) + launches
                    record[STABILITY_PLUGIN_INSTANCES] = record.get(STABILITY_PLUGIN_INSTANCES, 0) + instances
                    record[STABILITY_PLUGIN_CRASHES] = record.get(STABILITY_PLUGIN_CRASHES, 0) + crashes
                    return records
            records.append({
                STABILITY_PLUGIN_NAME: name,
                STABILITY_PLUGIN_LAUNCHES: launches,
                STABILITY_PLUGIN_INSTANCES: instances,
                STABILITY_PLUGIN_CRASHES: crashes,
            })
            return records

        self.prefs.update(STABILITY_PLUGIN_STATS, _merge)

    def plugin_usage(self) -> list:
        return self.prefs.get_list(STABILITY_PLUGIN_STATS)

    def take_plugin_usage(self) -> list:
        """Return every usage record and clear the list atomically.

        Events recorded after the take start a fresh list, so they land
        in the next report instead of merging into a consumed record.
        """
        records = self.prefs.take(STABILITY_PLUGIN_STATS)
        if not isinstance(records, list):
            return []
        return records
