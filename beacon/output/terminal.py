"""Rich terminal output for a finished report."""
from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from beacon import __version__
from beacon.models import Report
from beacon.report.record import to_dict

console = Console()

# Structured stability fields in display order
STABILITY_ROWS = (
    ("launch_count", "Launches"),
    ("crash_count", "Crashes"),
    ("incomplete_shutdown_count", "Incomplete shutdowns"),
    ("page_load_count", "Page loads"),
    ("renderer_crash_count", "Renderer crashes"),
    ("extension_renderer_crash_count", "Extension renderer crashes"),
    ("renderer_hang_count", "Renderer hangs"),
    ("child_process_crash_count", "Child process crashes"),
    ("other_user_crash_count", "Other user crashes"),
    ("kernel_crash_count", "Kernel crashes"),
    ("unclean_system_shutdown_count", "Unclean system shutdowns"),
    ("uptime_sec", "Uptime (s)"),
)


def render(report: Report, out: Console | None = None) -> None:
    """Render the report summary to the terminal using Rich."""
    out = out or console
    _render_header(report, out)
    _render_stability(report, out)
    _render_plugins(report, out)
    _render_events(report, out)
    _render_faults(report, out)


def _render_section_header(title: str, out: Console) -> None:
    out.print()
    out.rule(f"[bold]{title}[/bold]", style="bold")
    out.print()


def _render_header(report: Report, out: Console) -> None:
    header = Text()
    header.append("  BEACON ", style="bold white")
    header.append(f"v{__version__} · telemetry report", style="dim")
    out.print(Panel(header, style="bold blue"))
    out.print(
        f" [bold]client {report.client_id}  session {report.session_id}  "
        f"app {report.app_version}[/bold]"
    )
    state = "[green]locked[/green]" if report.locked else "[yellow]open[/yellow]"
    out.print(f" Report is {state}, {report.num_events} event(s).")


def _render_stability(report: Report, out: Console) -> None:
    stability = to_dict(report.record.system_profile.stability)
    rows = [(label, stability[key]) for key, label in STABILITY_ROWS if key in stability]
    if not rows:
        return
    _render_section_header("STABILITY", out)
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        out.print(f"  {label:<{width}}  [bold]{value:>8}[/bold]")


def _render_plugins(report: Report, out: Console) -> None:
    if not report.plugin_stability:
        return
    _render_section_header("PLUGIN STABILITY", out)
    for entry in report.plugin_stability:
        crashes = entry.crash_count
        marker = "[red]●[/red]" if crashes else "[dim]●[/dim]"
        out.print(f"  {marker} {entry.name_token}  [dim]v{entry.version}[/dim]")
        out.print(
            f"      launches {entry.launch_count}  instances {entry.instance_count}  "
            f"crashes {crashes}"
        )


def _render_events(report: Report, out: Console) -> None:
    omnibox = len(report.record.omnibox_event)
    histograms = len(report.record.histogram_event)
    if omnibox or histograms:
        out.print()
        out.print(f"  {omnibox} omnibox event(s), {histograms} histogram(s)")


def _render_faults(report: Report, out: Console) -> None:
    if not report.faults:
        out.print()
        out.print("  [green]✓[/green]  No data quality faults")
        return
    _render_section_header("DATA QUALITY", out)
    for fault in report.faults:
        out.print(f"  [yellow]⚠[/yellow]  {fault.kind}: {fault.detail}")
    out.print()
