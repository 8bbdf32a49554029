"""Click CLI entry point for Beacon."""
from __future__ import annotations

import json
import logging
import sys

import click

from beacon import __version__
from beacon.config import (
    apply_env_overrides, context_from_config, get_config_path, load_config, save_config,
)
from beacon.errors import ProgrammingFault
from beacon.prefs import PreferenceStore
from beacon.providers import (
    HostEnvironment, StaticEnvironment, StaticPluginInventory, field_trials_from_names,
)
from beacon.report.builder import ReportBuilder
from beacon.report.events import HistogramSample, OmniboxEvent

logger = logging.getLogger(__name__)

CONFIG_KEYS = ("version_extension", "official_build", "platform", "app_version")


@click.group()
@click.version_option(version=__version__, prog_name="beacon")
def cli() -> None:
    """Beacon - privacy-scrubbed telemetry reports."""
    pass


@cli.command()
@click.argument("state_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "output_format", type=click.Choice(["terminal", "xml", "json"]),
              default="terminal", help="Output format")
@click.option("--incremental", is_flag=True,
              help="Stability-only report, as sent after a crash")
@click.option("--persist", is_flag=True,
              help="Write the reset counters back to the state file")
@click.option("--config-dir", default=".", type=click.Path(file_okay=False),
              help="Directory holding .beacon/config.json")
@click.option("--verbose", is_flag=True, help="Debug logging")
def build(state_path: str, output_format: str, incremental: bool, persist: bool,
          config_dir: str, verbose: bool) -> None:
    """Build one report from a JSON state file."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    state = _load_state(state_path)
    if state is None:
        click.echo(f"Could not read state file: {state_path}", err=True)
        sys.exit(1)

    cfg = apply_env_overrides(load_config(get_config_path(config_dir)))
    context = context_from_config(cfg)

    pref_store = PreferenceStore(state.get("prefs", {}))
    inventory = StaticPluginInventory.from_list(state.get("plugins", []))
    environment = (
        StaticEnvironment.from_dict(state["environment"])
        if "environment" in state else HostEnvironment()
    )

    builder = ReportBuilder(
        client_id=str(state.get("client_id", "")),
        session_id=int(state.get("session_id", 0)),
        pref_store=pref_store,
        context=context,
        environment=environment,
        field_trials=field_trials_from_names(state.get("field_trials", [])),
        plugin_inventory=inventory,
    )

    try:
        if incremental:
            builder.record_incremental_stability_elements(inventory.plugins())
        else:
            builder.record_environment(inventory.plugins(), state.get("profile_metrics"))
        for event in state.get("events", []):
            builder.record_usage_event(OmniboxEvent.from_dict(event))
        for histogram in state.get("histograms", []):
            builder.record_histogram_delta(HistogramSample.from_dict(histogram))
        report = builder.close()
    except ProgrammingFault as e:
        click.echo(f"Report build aborted: {e}", err=True)
        sys.exit(1)

    if output_format == "xml":
        click.echo(report.legacy_xml())
    elif output_format == "json":
        click.echo(report.to_json())
    else:
        from beacon.output.terminal import render
        render(report)

    if persist:
        state["prefs"] = pref_store.snapshot()
        try:
            with open(state_path, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
        except OSError as e:
            click.echo(f"  Failed to persist prefs: {e}", err=True)
            sys.exit(1)


@cli.group()
def config() -> None:
    """Manage Beacon configuration."""
    pass


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.argument("path", default=".", type=click.Path(file_okay=False))
def config_set(key: str, value: str, path: str) -> None:
    """Set a configuration value."""
    if key not in CONFIG_KEYS:
        click.echo(f"Unknown config key: {key}", err=True)
        sys.exit(1)
    config_path = get_config_path(path)
    cfg = load_config(config_path)
    if key == "official_build":
        if value not in ("on", "off"):
            click.echo("Value must be 'on' or 'off'", err=True)
            sys.exit(1)
        cfg[key] = (value == "on")
    else:
        cfg[key] = value
    save_config(config_path, cfg)
    click.echo(f"{key}: {value}")


@config.command("get")
@click.argument("key")
@click.argument("path", default=".", type=click.Path(file_okay=False))
def config_get(key: str, path: str) -> None:
    """Get a configuration value (environment overrides applied)."""
    if key not in CONFIG_KEYS:
        click.echo(f"Unknown config key: {key}", err=True)
        sys.exit(1)
    cfg = apply_env_overrides(load_config(get_config_path(path)))
    value = cfg.get(key)
    if key == "official_build":
        value = "on" if value else "off"
    elif key == "app_version" and value is None:
        value = __version__
    click.echo(f"{key}: {'' if value is None else value}")


def _load_state(state_path: str) -> dict | None:
    try:
        with open(state_path, "r", encoding="utf-8") as f:
            state = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Failed to load state %s: %s", state_path, e)
        return None
    return state if isinstance(state, dict) else None


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
