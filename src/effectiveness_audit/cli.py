"""CLI interface for effectiveness-audit."""

import asyncio
import json
import logging
import sys
import uuid

import click
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from . import __version__
from .collector import HttpDataCollector, normalize_url
from .config import Settings
from .errors import ConfigError
from .criteria import PageSpeedClient
from .events import EventChannel, progress_channel
from .executor import TieredCriterionExecutor
from .insights import AIClientConfig, AIInsightsClient, get_provider
from .models import EffectivenessResult, InsightsResponse, RunResult
from .scorer import EnhancedScorer
from .storage import InMemoryRunStore

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def score_color(score: float) -> str:
    """Get color for a 0-10 score."""
    if score >= 8:
        return "green"
    elif score >= 6:
        return "yellow"
    elif score >= 4:
        return "orange1"
    else:
        return "red"


def score_bar(score: float, width: int = 20) -> Text:
    filled = int((score / 10) * width)
    color = score_color(score)
    bar = Text()
    bar.append("█" * filled, style=color)
    bar.append("░" * (width - filled), style="dim")
    bar.append(f" {score}/10", style=f"bold {color}")
    return bar


def print_result(result: EffectivenessResult, verbose: bool = False) -> None:
    console.print()
    console.print(Panel(f"[bold]{result.url}[/bold]", title="Website Effectiveness", border_style="blue"))
    console.print()
    console.print("  Overall: ", end="")
    console.print(score_bar(result.overall_score, width=25))
    console.print()

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Criterion", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Summary")
    for r in result.criterion_results:
        table.add_row(
            r.criterion.label,
            f"[{score_color(r.score)}]{r.score}[/]",
            r.evidence.kind,
            r.evidence.description,
        )
    console.print(table)

    if verbose:
        console.print("[bold]Checks:[/bold]\n")
        for r in result.criterion_results:
            console.print(f"  [cyan]{r.criterion.label}[/cyan]")
            for check in r.passes.passed:
                console.print(f"    [green]✓[/green] {check}")
            for check in r.passes.failed:
                console.print(f"    [red]✗[/red] {check}")
            console.print(f"    [dim]{r.evidence.reasoning}[/dim]")
        console.print()

    notes = list(result.errors) + [f"{k}: {v}" for k, v in result.collection_errors.items()]
    if notes and verbose:
        console.print("[bold]Notes:[/bold]")
        for note in notes:
            console.print(f"  [dim]• {note}[/dim]")
        console.print()


def print_insights(insights: InsightsResponse) -> None:
    source = "fallback" if insights.fallback else "AI"
    body = Text(insights.insight)
    body.append("\n\n")
    for i, rec in enumerate(insights.recommendations, 1):
        body.append(f"{i}. {rec}\n")
    console.print(Panel(
        body,
        title=f"Insights ({insights.key_pattern.value}, {source}, confidence {insights.confidence:.2f})",
        border_style="magenta",
    ))


def print_run(run: RunResult, verbose: bool = False) -> None:
    if run.client is not None:
        print_result(run.client, verbose=verbose)

    if run.competitors:
        table = Table(title="Competitors", box=box.SIMPLE, header_style="bold")
        table.add_column("URL", style="cyan")
        table.add_column("Score", justify="right")
        for outcome in run.competitors:
            if outcome.result is not None:
                score = outcome.result.overall_score
                table.add_row(outcome.url, f"[{score_color(score)}]{score}[/]")
            else:
                table.add_row(outcome.url, f"[red]failed[/red] [dim]{outcome.error}[/dim]")
        console.print(table)

    if run.insights is not None:
        print_insights(run.insights)

    console.print("[dim]─" * 50 + "[/dim]")
    console.print(f"[dim]effectiveness-audit v{__version__} • run {run.run_id}[/dim]")
    console.print()


def load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ConfigError as e:
        raise click.UsageError(str(e))


def build_scorer(settings: Settings, events: EventChannel, insights: bool = True) -> EnhancedScorer:
    provider = get_provider(settings)
    pagespeed = PageSpeedClient(api_key=settings.pagespeed_api_key)
    insights_client = None
    if insights:
        insights_client = AIInsightsClient(provider, AIClientConfig(
            max_retries=settings.insights_max_retries,
            retry_delay=settings.retry_delay,
            rate_limit_delay=settings.rate_limit_delay,
            enable_fallback=settings.enable_fallback,
            timeout=settings.insights_timeout,
        ))
    return EnhancedScorer(
        collector=HttpDataCollector(),
        config_provider=settings.config_provider(),
        executor=TieredCriterionExecutor(llm=provider, pagespeed=pagespeed),
        insights_client=insights_client,
        store=InMemoryRunStore(),
        events=events,
    )


async def run_with_progress(
    scorer: EnhancedScorer,
    events: EventChannel,
    url: str,
    competitors: list[str],
    show_progress: bool = True,
) -> RunResult:
    run_id = uuid.uuid4().hex[:12]
    if not show_progress:
        return await scorer.run_analysis(url, competitors, run_id=run_id)

    subscription = events.subscribe(progress_channel(run_id))
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"Scanning {url}", total=100)

        async def consume():
            async for event in subscription:
                state = event.payload.get("state") or {}
                progress.update(task, completed=state.get("overall_percent", 0),
                                description=state.get("message") or f"Scanning {url}")

        consumer = asyncio.create_task(consume())
        try:
            return await scorer.run_analysis(url, competitors, run_id=run_id)
        finally:
            subscription.close()
            await consumer


@click.group(invoke_without_command=True)
@click.pass_context
@click.version_option(version=__version__)
def cli(ctx):
    """Effectiveness Audit - score how well a website works for its visitors.

    \b
    Quick start:
        effectiveness-audit scan example.com
        effectiveness-audit scan example.com -c rival.com -c other.com

    \b
    Commands:
        scan    Score a website and optional competitors
        health  Check the configured LLM provider
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("url")
@click.option("-c", "--competitor", "competitors", multiple=True, help="Competitor URL (repeatable)")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--no-insights", is_flag=True, help="Skip insights generation")
@click.option("-v", "--verbose", is_flag=True, help="Show every check and collection note")
@click.option("--log-level", default=None, help="Log level (default: EFFECTIVENESS_LOG_LEVEL or WARNING)")
def scan(url: str, competitors: tuple[str, ...], json_output: bool, no_insights: bool,
         verbose: bool, log_level: str | None):
    """Score a website for effectiveness.

    \b
    Examples:
        effectiveness-audit scan stripe.com
        effectiveness-audit scan example.com -c competitor.com --json
    """
    settings = load_settings()
    configure_logging(log_level or settings.log_level)

    events = EventChannel()
    try:
        scorer = build_scorer(settings, events, insights=not no_insights)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="EFFECTIVENESS_LLM_PROVIDER")

    url = normalize_url(url)
    competitor_urls = [normalize_url(c) for c in competitors]
    try:
        run = asyncio.run(run_with_progress(scorer, events, url, competitor_urls, show_progress=not json_output))
    except Exception as e:
        if json_output:
            click.echo(json.dumps({"url": url, "status": "failed", "error": str(e)}, indent=2))
        else:
            console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(run.to_dict(), indent=2))
    else:
        print_run(run, verbose=verbose)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def health(json_output: bool):
    """Check that the configured LLM provider answers."""
    settings = load_settings()
    configure_logging(settings.log_level)
    try:
        provider = get_provider(settings)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="EFFECTIVENESS_LLM_PROVIDER")

    client = AIInsightsClient(provider, AIClientConfig(timeout=settings.insights_timeout))
    report = asyncio.run(client.health_check())

    if json_output:
        click.echo(json.dumps({
            "status": report.status,
            "latency_ms": report.latency_ms,
            "provider": report.provider,
            "model": report.model,
            "error": report.error,
        }, indent=2))
    else:
        color = {"healthy": "green", "degraded": "yellow"}.get(report.status, "red")
        console.print(f"[{color}]{report.status}[/] {report.provider or settings.llm_provider} "
                      f"{report.model or ''} [dim]{report.latency_ms}ms[/dim]")
        if report.error:
            console.print(f"  [dim]{report.error}[/dim]")

    if report.status == "unhealthy":
        sys.exit(1)


# Convenience: allow `effectiveness-audit URL` as shortcut for `effectiveness-audit scan URL`
def main():
    """Entry point that handles both `effectiveness-audit URL` and `effectiveness-audit scan URL`."""
    args = sys.argv[1:]
    if args and not args[0].startswith("-") and args[0] not in ("scan", "health"):
        if "." in args[0] or args[0] == "localhost":
            sys.argv.insert(1, "scan")
    cli()


if __name__ == "__main__":
    main()
