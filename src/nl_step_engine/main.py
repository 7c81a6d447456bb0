"""
NL Step Engine - CLI Entry Point.

Configuration Priority:
    1. CLI arguments (--threshold, --timeout, etc.)
    2. Environment variables (NL_STEP_ENGINE__MATCHER__CONFIDENCE_THRESHOLD, etc.)
    3. Config file (nl-step-engine.yaml / config.yaml)

Usage:
    nl-step-engine parse "Click the second Edit button in the Users table"
    nl-step-engine run https://example.com "Click Login" "Verify the Dashboard heading is visible"
    nl-step-engine cache-stats
"""

import asyncio
import json
import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from nl_step_engine import __version__
from nl_step_engine.config import get_settings
from nl_step_engine.engine.element_cache import ElementCache
from nl_step_engine.engine.orchestrator import StepEngine
from nl_step_engine.engine.step_parser import StepParser
from nl_step_engine.exceptions import StepEngineError
from nl_step_engine.utils.logging import setup_logging

# Create the CLI app
app = typer.Typer(
    name="nl-step-engine",
    help="Deterministic natural-language test steps for Playwright",
    add_completion=False,
)

console = Console()

BROWSER_CHANNELS = ("chrome", "chrome-beta", "msedge", "msedge-beta")


def _configure_logging(verbose: bool) -> None:
    settings = get_settings()
    setup_logging(
        level="DEBUG" if verbose else settings.logging.level,
        log_file=settings.logging.file,
        json_format=settings.logging.json_format,
    )


@app.command()
def parse(
    instruction: str = typer.Argument(..., help="Instruction to parse"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Parse an instruction and print the structured step.

    Examples:
        nl-step-engine parse "Type 'admin' in the Username field"
    """
    _configure_logging(verbose)
    try:
        step = StepParser().parse(instruction)
    except StepEngineError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold blue]{step.category.value}[/bold blue]: {step.intent}\n"
        f"[dim]Rule:[/dim] {step.matched_rule_id or 'keyword fallback'}\n"
        f"[dim]Confidence:[/dim] {step.confidence:.2f}",
        border_style="blue",
    ))
    console.print_json(json.dumps(step.to_dict()))


@app.command()
def run(
    url: str = typer.Argument(..., help="Page to open first"),
    instructions: List[str] = typer.Argument(..., help="Instructions to run in order"),
    visible: bool = typer.Option(False, "--visible", "-v", help="Run with visible browser"),
    browser: str = typer.Option("chromium", "--browser", "-b", help="Browser: chromium, firefox, webkit, chrome, msedge"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Matcher confidence threshold"),
    timeout: Optional[int] = typer.Option(None, "--timeout", "-t", help="Action timeout in milliseconds"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Open a page and run instructions against it.

    Browser options:
        --browser chromium  (default, bundled)
        --browser chrome    (Google Chrome)
        --browser msedge    (Microsoft Edge)

    Examples:
        nl-step-engine run https://example.com "Click More information"
        nl-step-engine run https://example.com "Get the page title" --visible -b chrome
    """
    _configure_logging(verbose)

    overrides: dict = {}
    if threshold is not None:
        overrides.setdefault("matcher", {})["confidence_threshold"] = threshold
    if timeout is not None:
        overrides.setdefault("executor", {})["timeout_ms"] = timeout
    settings = get_settings().merge_with(overrides) if overrides else get_settings()

    console.print(Panel.fit(
        f"[bold blue]NL Step Engine[/bold blue]\n"
        f"[dim]Browser:[/dim] {browser}\n"
        f"[dim]URL:[/dim] {url}\n"
        f"[dim]Steps:[/dim] {len(instructions)}",
        border_style="blue",
    ))

    ok = asyncio.run(_run_async(url, instructions, headless=not visible, browser=browser, settings=settings))
    if not ok:
        raise typer.Exit(1)


async def _run_async(url: str, instructions: List[str], headless: bool, browser: str, settings) -> bool:
    """Launch a browser, run every instruction, report each result."""
    from playwright.async_api import async_playwright

    engine = StepEngine(settings=settings)
    async with async_playwright() as playwright:
        channel = browser if browser in BROWSER_CHANNELS else None
        launcher = {
            "firefox": playwright.firefox,
            "webkit": playwright.webkit,
        }.get(browser, playwright.chromium)

        instance = await launcher.launch(headless=headless, channel=channel)
        try:
            page = await instance.new_page()
            await page.goto(url, wait_until="domcontentloaded")

            for i, instruction in enumerate(instructions, 1):
                try:
                    value = await engine.run(instruction, page)
                except StepEngineError as e:
                    console.print(f"[red]✗ {i}. {instruction}[/red]")
                    console.print(f"  [red]{e}[/red]")
                    return False
                suffix = f" [dim]→[/dim] {value!r}" if value not in (None, True) else ""
                console.print(f"[green]✓ {i}. {instruction}[/green]{suffix}")
            return True
        except Exception as e:
            console.print(f"\n[red]Error: {e}[/red]")
            logging.exception("Execution failed")
            return False
        finally:
            engine.close()
            await instance.close()


@app.command("cache-stats")
def cache_stats(
    directory: Optional[str] = typer.Option(None, "--dir", "-d", help="Cache directory (default: from config)"),
):
    """Show element cache statistics."""
    cache = ElementCache(cache_dir=directory or get_settings().cache.directory)
    stats = cache.get_stats()

    table = Table(title=f"Element cache ({cache.cache_path})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Entries", str(stats["entries"]))
    table.add_row("Page patterns", str(stats["pagePatterns"]))
    table.add_row("Total successes", str(stats["totalSuccesses"]))
    console.print(table)


@app.command("cache-clear")
def cache_clear(
    directory: Optional[str] = typer.Option(None, "--dir", "-d", help="Cache directory (default: from config)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete every cached element and page statistic."""
    cache = ElementCache(cache_dir=directory or get_settings().cache.directory)
    if not yes and not typer.confirm(f"Clear {len(cache)} cached element(s)?"):
        raise typer.Exit(0)
    cache.clear()
    console.print(f"[green]✓ Cleared {cache.cache_path}[/green]")


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]NL Step Engine[/bold] v{__version__}")


if __name__ == "__main__":
    app()
