"""CLI commands for uilocator."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from uilocator import __version__

if TYPE_CHECKING:
    from uilocator.core.config import LocatorConfig
    from uilocator.core.hierarchy_controller import HierarchyController

# Load .env file from current directory or parent directories
load_dotenv()

app = typer.Typer(
    name="uilocator",
    help="Resolve screen taps on Android devices to stable element locators",
    no_args_is_help=True,
)
console = Console()

LOG_DIR = Path(".uilocator")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"uilocator version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """uilocator - UI hierarchy inspection and locator generation."""
    pass


def _load_config() -> LocatorConfig:
    from uilocator.core.config import (
        ConfigLoader,
        setup_diagnostics_logging,
        setup_logging,
    )

    config = ConfigLoader.load()
    if config.verbose:
        log_file = setup_logging(verbose=True, log_dir=LOG_DIR)
        if log_file:
            console.print(f"[dim]Verbose logging -> {log_file}[/dim]")
    setup_diagnostics_logging(config.hierarchy.verbose)
    return config


def _build_controller(config: LocatorConfig) -> HierarchyController:
    """Wire bridge, retrieval chain and env-refreshed settings together."""
    from uilocator.core.config import hierarchy_settings_from_env
    from uilocator.core.device_bridge import DeviceBridge
    from uilocator.core.hierarchy_controller import HierarchyController
    from uilocator.core.retrieval_strategies import default_strategies

    bridge = DeviceBridge(adb_path=config.adb_path)
    strategies = default_strategies(bridge, config.session.host, config.session.port)
    base = config.hierarchy
    return HierarchyController(
        bridge=bridge,
        strategies=strategies,
        settings=lambda: hierarchy_settings_from_env(base),
    )


@app.command()
def dump(
    device: str | None = typer.Option(None, "--device", "-d", help="Device ID"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write XML to file"),
) -> None:
    """Capture the current UI hierarchy."""
    config = _load_config()
    controller = _build_controller(config)

    xml = controller.acquire(device or config.device)
    if xml is None:
        console.print("[red]Error:[/red] UI hierarchy unavailable. Check 'adb devices'.")
        raise typer.Exit(1)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(xml, encoding="utf-8")
        console.print(f"[green]Saved:[/green] {output} ({len(xml)} chars)")
    else:
        typer.echo(xml)


@app.command()
def inspect(
    x: float = typer.Argument(..., help="X coordinate in pixels"),
    y: float = typer.Argument(..., help="Y coordinate in pixels"),
    device: str | None = typer.Option(None, "--device", "-d", help="Device ID"),
    xpath: bool = typer.Option(False, "--xpath", help="Re-resolve through a unique XPath"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Show the element and ranked locators at a screen point."""
    from uilocator.core.inspector import Inspector
    from uilocator.core.locator_scorer import DynamicTextRules

    config = _load_config()
    inspector = Inspector(
        _build_controller(config),
        tolerance=config.resolver.tolerance,
        radius=config.resolver.radius,
        rules=DynamicTextRules(
            digit_ratio_threshold=config.dynamic_text.digit_ratio,
            digit_run_length=config.dynamic_text.digit_run,
        ),
    )

    try:
        result = inspector.inspect_at_point(
            x, y, device_id=device or config.device, prefer_xpath=xpath
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        if not result.hierarchy_available:
            raise typer.Exit(1)
        return

    if not result.hierarchy_available:
        console.print("[red]Error:[/red] UI hierarchy unavailable. Check 'adb devices'.")
        raise typer.Exit(1)

    if result.node_count == 0:
        console.print("[yellow]UI hierarchy is empty (no nodes on screen)[/yellow]")
        raise typer.Exit(1)

    if result.element is None:
        console.print(f"[yellow]No element at ({x:g}, {y:g})[/yellow]")
        raise typer.Exit(1)

    element = result.element
    console.print(f"[bold]Element:[/bold] {escape(element.class_name or 'unknown')}")
    console.print(f"  bounds: {element.bounds}", markup=False)
    console.print(f"  fingerprint: {result.fingerprint}", markup=False)
    console.print(f"  resolved by: {result.resolved_by}", markup=False)

    table = Table(title="Locators")
    table.add_column("Strategy", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Score", justify="right")
    table.add_column("Matches", justify="right")
    table.add_column("Reason", style="dim")

    for locator in result.locators:
        table.add_row(
            locator.strategy,
            escape(locator.value),
            f"{locator.score:g}",
            "-" if locator.match_count is None else str(locator.match_count),
            escape(locator.reason),
        )

    console.print(table)
    console.print(f"Reliability: [bold]{result.reliability}[/bold]/100")


@app.command()
def heal(
    fingerprint_json: Path = typer.Argument(..., help="JSON file with recorded element metadata"),
    device: str | None = typer.Option(None, "--device", "-d", help="Device ID"),
) -> None:
    """Find a recorded element in the current hierarchy."""
    from uilocator.core.healing import LocatorHealingEngine
    from uilocator.core.hierarchy_parser import parse_hierarchy

    if not fingerprint_json.exists():
        console.print(f"[red]Error:[/red] File not found: {fingerprint_json}")
        raise typer.Exit(2)

    try:
        with open(fingerprint_json, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] Invalid JSON in {fingerprint_json}: {e}")
        raise typer.Exit(2)

    # Accept a bare element dict or an inspection result with an "element" key
    target = data.get("element", data) if isinstance(data, dict) else None
    if not isinstance(target, dict) or not target:
        console.print("[red]Error:[/red] Expected a JSON object with element metadata")
        raise typer.Exit(2)

    config = _load_config()
    if not config.healing.enabled:
        console.print("[yellow]Healing is disabled (UILOC_HEALING_ENABLED)[/yellow]")
        raise typer.Exit(1)

    xml = _build_controller(config).acquire(device or config.device)
    if xml is None:
        console.print("[red]Error:[/red] UI hierarchy unavailable. Check 'adb devices'.")
        raise typer.Exit(1)

    engine = LocatorHealingEngine(enabled=True, threshold=config.healing.threshold)
    match = engine.rank_best_match(target, parse_hierarchy(xml))
    if match is None:
        console.print(
            f"[yellow]No match above threshold {config.healing.threshold}[/yellow]"
        )
        raise typer.Exit(1)

    table = Table(title=f"Best match (score {match.score})")
    table.add_column("Attribute", style="cyan")
    table.add_column("Value", style="green")
    for key in ("class", "resource-id", "content-desc", "text", "bounds"):
        table.add_row(key, escape(match.node.attr(key)))
    console.print(table)


if __name__ == "__main__":
    app()
