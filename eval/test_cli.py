"""Tests for the beacon CLI."""
import io
import json
import xml.etree.ElementTree as ET

import pytest
from click.testing import CliRunner
from rich.console import Console

from beacon import prefs
from beacon.cli import cli
from beacon.output.terminal import render
from beacon.prefs import CounterStore


# ── Helpers ─────────────────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def state_file(tmp_path):
    state = {
        "client_id": "cli-client",
        "session_id": 3,
        "prefs": {
            prefs.STABILITY_LAUNCH_COUNT: 2,
            prefs.STABILITY_CRASH_COUNT: 1,
            prefs.STABILITY_PAGE_LOAD_COUNT: 40,
            prefs.STABILITY_PLUGIN_STATS: [
                {"name": "Foo", "launches": 1, "instances": 2, "crashes": 1},
            ],
        },
        "plugins": [
            {"name": "Foo", "path": "/usr/lib/libfoo.so", "version": "1.0", "enabled": True},
        ],
        "environment": {
            "cpu_architecture": "arm64",
            "memory_mb": 4096,
            "os_name": "Linux",
            "os_version": "6.1.0",
            "display": {"width": 1280, "height": 800, "count": 1},
            "locale": "de-DE",
        },
        "field_trials": [{"name": "Omnibox", "group": "Enabled"}],
        "events": [{"text": "weather", "input_type": "query", "selected_index": 0}],
        "histograms": [{"name": "Net.Errors", "sum": 12, "buckets": [[0, 5, 2]]}],
    }
    path = tmp_path / "state.json"
    path.write_text(json.dumps(state), encoding="utf-8")
    return path


def _invoke(runner, tmp_path, *args):
    return runner.invoke(cli, [*args, "--config-dir", str(tmp_path)])


# ── build ───────────────────────────────────────────────────────────


def test_build_xml(runner, tmp_path, state_file):
    result = _invoke(runner, tmp_path, "build", str(state_file), "--format", "xml")
    assert result.exit_code == 0, result.output

    root = ET.fromstring(result.output.strip())
    assert root.get("clientid") == "cli-client"
    assert root.find("profile/stability").get("pageloadcount") == "40"
    assert root.find("profile/cpu").get("arch") == "arm64"
    assert len(root.findall("profile/stability/plugins/pluginstability")) == 1
    assert root.find("uielement/autocomplete").get("typedlength") == "7"


def test_build_json(runner, tmp_path, state_file):
    result = _invoke(runner, tmp_path, "build", str(state_file), "--format", "json")
    assert result.exit_code == 0, result.output

    data = json.loads(result.output)
    assert data["client_id"] == "cli-client"
    assert data["system_profile"]["stability"]["launch_count"] == 2
    assert len(data["system_profile"]["field_trial"]) == 1
    assert data["histogram_event"][0]["sum"] == 12


def test_build_terminal(runner, tmp_path, state_file):
    state = json.loads(state_file.read_text(encoding="utf-8"))
    state["prefs"][prefs.STABILITY_PLUGIN_STATS].append(
        {"name": "Gone", "launches": 1, "instances": 0, "crashes": 0}
    )
    state_file.write_text(json.dumps(state), encoding="utf-8")

    result = _invoke(runner, tmp_path, "build", str(state_file))
    assert result.exit_code == 0, result.output
    assert "Launches" in result.output
    assert "unmatched_plugin" in result.output


def test_build_incremental(runner, tmp_path, state_file):
    result = _invoke(runner, tmp_path, "build", str(state_file), "--format", "xml",
                     "--incremental")
    assert result.exit_code == 0, result.output
    root = ET.fromstring(result.output.strip())
    assert root.find("profile/cpu") is None
    assert root.find("profile/stability").get("launchcount") == "2"


def test_persist_resets_counters(runner, tmp_path, state_file):
    result = _invoke(runner, tmp_path, "build", str(state_file), "--format", "json",
                     "--persist")
    assert result.exit_code == 0, result.output

    saved = json.loads(state_file.read_text(encoding="utf-8"))["prefs"]
    assert saved[prefs.STABILITY_LAUNCH_COUNT] == 0
    assert saved[prefs.STABILITY_PAGE_LOAD_COUNT] == 0
    assert prefs.STABILITY_PLUGIN_STATS not in saved

    again = _invoke(runner, tmp_path, "build", str(state_file), "--format", "json")
    stability = json.loads(again.output)["system_profile"]["stability"]
    assert stability["launch_count"] == 0
    assert "page_load_count" not in stability


def test_without_persist_state_is_untouched(runner, tmp_path, state_file):
    before = state_file.read_text(encoding="utf-8")
    _invoke(runner, tmp_path, "build", str(state_file), "--format", "xml")
    assert state_file.read_text(encoding="utf-8") == before


def test_config_drives_version(runner, tmp_path, state_file):
    runner.invoke(cli, ["config", "set", "official_build", "on", str(tmp_path)])
    runner.invoke(cli, ["config", "set", "app_version", "30.0.1", str(tmp_path)])
    result = _invoke(runner, tmp_path, "build", str(state_file), "--format", "xml")
    assert ET.fromstring(result.output.strip()).get("appversion") == "30.0.1"


def test_bad_state_file_exits_1(runner, tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    result = _invoke(runner, tmp_path, "build", str(path))
    assert result.exit_code == 1


def test_programming_fault_exits_1(runner, tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({
        "environment": {},
        "profile_metrics": {"profile-1": {"ratio": 0.5}},
    }), encoding="utf-8")
    result = _invoke(runner, tmp_path, "build", str(path), "--format", "xml")
    assert result.exit_code == 1
    assert "aborted" in result.output


# ── config ──────────────────────────────────────────────────────────


def test_config_set_and_get(runner, tmp_path):
    result = runner.invoke(cli, ["config", "set", "version_extension", "-beta", str(tmp_path)])
    assert result.exit_code == 0
    result = runner.invoke(cli, ["config", "get", "version_extension", str(tmp_path)])
    assert result.output.strip() == "version_extension: -beta"


def test_config_get_defaults(runner, tmp_path):
    result = runner.invoke(cli, ["config", "get", "official_build", str(tmp_path)])
    assert result.output.strip() == "official_build: off"


def test_config_rejects_unknown_key(runner, tmp_path):
    result = runner.invoke(cli, ["config", "set", "nope", "1", str(tmp_path)])
    assert result.exit_code == 1


def test_config_official_build_needs_on_off(runner, tmp_path):
    result = runner.invoke(cli, ["config", "set", "official_build", "maybe", str(tmp_path)])
    assert result.exit_code == 1


# ── terminal ────────────────────────────────────────────────────────


def test_render_lists_plugin_tokens(make_builder, pref_store, plugins):
    CounterStore(pref_store).record_plugin_event("Foo", crashes=2)
    builder = make_builder()
    builder.record_environment(plugins)
    report = builder.close()

    buffer = io.StringIO()
    render(report, Console(file=buffer, width=200))
    text = buffer.getvalue()
    assert "PLUGIN STABILITY" in text
    assert report.plugin_stability[0].name_token in text
    assert "No data quality faults" in text
