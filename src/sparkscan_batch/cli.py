"""Command-line interface for the Sparkscan Batch Analyzer."""

import asyncio
import functools
import json
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from .clients import extract_addresses_from_text
from .config import get_settings
from .errors import SparkBatchError
from .main import SparkBatchApp, get_app
from .processors import ProgressEvent, export_csv, export_filename, export_json, summarize_results
from .storage import AddressResult, Job, JobStatus

# Rich console for pretty output
console = Console()

STATUS_STYLES = {
    "pending": "dim",
    "processing": "yellow",
    "completed": "green",
    "failed": "red",
    "success": "green",
}


def handle_async(coro):
    """Decorator to run async functions as Click commands."""

    @functools.wraps(coro)
    def wrapper(*args, **kwargs):
        return asyncio.run(coro(*args, **kwargs))

    return wrapper


def print_error(message: str) -> None:
    """Print error message with styling."""
    console.print(f"❌ [bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print success message with styling."""
    console.print(f"✅ [bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print warning message with styling."""
    console.print(f"⚠️  [bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print info message with styling."""
    console.print(f"ℹ️  [bold blue]Info:[/bold blue] {message}")


def read_addresses(file: Optional[str], addresses: Tuple[str, ...]) -> List[str]:
    """Collect addresses from a text/CSV file (one per line) and ``--address`` options."""
    collected: List[str] = []
    if file:
        collected.extend(extract_addresses_from_text(Path(file).read_text(encoding="utf-8")))
    collected.extend(address.strip() for address in addresses)
    return collected


def render_export(job: Job, results: List[AddressResult], export_format: str) -> str:
    if export_format == "csv":
        return export_csv(job, results)
    return export_json(job, results)


def write_export(job: Job, results: List[AddressResult], export_format: str, output: Optional[str]) -> Path:
    path = Path(output) if output else Path(export_filename(job, export_format))
    path.write_text(render_export(job, results, export_format), encoding="utf-8")
    return path


def display_job(job: Job, results: List[AddressResult]) -> None:
    """Print job counters and payload summary."""
    summary = summarize_results(job, results)
    style = STATUS_STYLES.get(job.status.value, "white")

    table = Table(title=f"📊 {job.name}", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Job ID", job.id)
    table.add_row("Status", f"[{style}]{job.status.value}[/{style}]")
    table.add_row("Rate Limit", f"{job.rate_limit}/s")
    table.add_row("Total Addresses", str(job.total_addresses))
    table.add_row("Processed", f"{job.processed_addresses} ({job.progress_percentage}%)")
    table.add_row("✅ Successful", str(job.successful_lookups))
    table.add_row("❌ Failed", str(job.failed_lookups))
    table.add_row("Total Value USD", f"${summary.total_value_usd:,.2f}")
    table.add_row("Total Transactions", str(summary.total_transactions))
    table.add_row("Unique Tokens", str(summary.unique_token_count))
    if job.target_token_address:
        table.add_row("Target Token", job.target_token_address)

    console.print(table)


def display_failures(results: List[AddressResult], limit: int = 10) -> None:
    failed = [r for r in results if r.status.value == "failed"]
    if not failed:
        return

    table = Table(title="❌ Failed Addresses", box=box.ROUNDED)
    table.add_column("Address", style="cyan")
    table.add_column("Reason", style="red")
    for result in failed[:limit]:
        table.add_row(result.address, result.error_message or "")
    console.print(table)
    if len(failed) > limit:
        print_info(f"{len(failed) - limit} more failed addresses not shown")


async def _open_app(log_level: str) -> SparkBatchApp:
    app = get_app()
    await app.initialize(log_level=log_level)
    return app


@click.group()
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default='WARNING', help='Logging level')
@click.pass_context
def cli(ctx: click.Context, log_level: str):
    """Sparkscan Batch Analyzer - look up balances for many Spark addresses."""
    ctx.ensure_object(dict)
    ctx.obj['log_level'] = log_level


@cli.command()
@click.option('--file', 'file', type=click.Path(exists=True, dir_okay=False),
              help='Text or CSV file with one address per line')
@click.option('--address', 'addresses', multiple=True, help='Address to analyze (repeatable)')
@click.option('--name', help='Job name (default: timestamped)')
@click.option('--rate-limit', type=click.IntRange(1, 100), help='Lookups per second')
@click.option('--target-token', help='Token address whose balance is exported')
@click.option('--progress/--no-progress', default=True, help='Show progress bar')
@click.option('--export-format', type=click.Choice(['csv', 'json']), help='Export results after the run')
@click.option('--output', type=click.Path(dir_okay=False), help='Export file path')
@click.pass_context
@handle_async
async def analyze(
        ctx: click.Context,
        file: Optional[str],
        addresses: Tuple[str, ...],
        name: Optional[str],
        rate_limit: Optional[int],
        target_token: Optional[str],
        progress: bool,
        export_format: Optional[str],
        output: Optional[str],
):
    """Look up every address and record the results."""
    address_list = read_addresses(file, addresses)
    if not address_list:
        print_error("No valid addresses found (addresses must start with 'sp')")
        raise click.ClickException("No addresses provided")

    console.print(Panel.fit(
        "[bold blue]⚡ Sparkscan Batch Analyzer[/bold blue]\n"
        f"[dim]{len(address_list)} addresses queued[/dim]",
        border_style="blue"
    ))

    app = None
    try:
        app = await _open_app(ctx.obj['log_level'])
        controller = app.controller

        job = await controller.create_job(
            name=name,
            rate_limit=rate_limit,
            target_token_address=target_token,
            total_addresses=len(address_list),
        )

        if progress:
            with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    console=console
            ) as progress_bar:
                task = progress_bar.add_task("Processing addresses...", total=None)
                counts = {"success": 0, "failed": 0}

                def update_progress(event: ProgressEvent) -> None:
                    if event.job_id != job.id:
                        return
                    counts["success" if event.is_success else "failed"] += 1
                    progress_bar.update(
                        task,
                        total=event.total,
                        completed=event.processed,
                        description=f"Processing addresses... ✅{counts['success']} ❌{counts['failed']}",
                    )

                controller.subscribe(update_progress)
                try:
                    await controller.start_job(job.id, address_list)
                    job = await controller.wait_for_job(job.id)
                finally:
                    controller.unsubscribe(update_progress)
        else:
            print_info("🚀 Starting address lookups...")
            await controller.start_job(job.id, address_list)
            job = await controller.wait_for_job(job.id)

        results = await controller.get_results(job.id)
        display_job(job, results)
        display_failures(results)

        if job.status == JobStatus.COMPLETED:
            print_success(f"Processed {job.processed_addresses} addresses")
        else:
            print_warning(f"Job ended with status '{job.status.value}'")

        if export_format:
            path = write_export(job, results, export_format, output)
            print_success(f"Results exported to {path}")

    except (SparkBatchError, ValueError) as e:
        print_error(f"Analysis failed: {e}")
        raise click.ClickException(str(e)) from e
    finally:
        if app is not None:
            await app.cleanup()


@cli.command()
@click.pass_context
@handle_async
async def jobs(ctx: click.Context):
    """List batch jobs in the configured store."""
    app = None
    try:
        app = await _open_app(ctx.obj['log_level'])
        job_list = await app.controller.list_jobs()

        if not job_list:
            print_info("No batch jobs found")
            return

        table = Table(title="📋 Batch Jobs", box=box.ROUNDED)
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Created")

        for job in job_list:
            style = STATUS_STYLES.get(job.status.value, "white")
            table.add_row(
                job.id,
                job.name,
                f"[{style}]{job.status.value}[/{style}]",
                f"{job.processed_addresses}/{job.total_addresses}",
                job.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            )
        console.print(table)

    except SparkBatchError as e:
        print_error(str(e))
        raise click.ClickException(str(e)) from e
    finally:
        if app is not None:
            await app.cleanup()


@cli.command()
@click.argument('job_id')
@click.pass_context
@handle_async
async def status(ctx: click.Context, job_id: str):
    """Show the state of one batch job."""
    app = None
    try:
        app = await _open_app(ctx.obj['log_level'])
        job = await app.controller.get_job(job_id)
        results = await app.controller.get_results(job_id)
        display_job(job, results)
        display_failures(results)

    except SparkBatchError as e:
        print_error(e.user_message)
        raise click.ClickException(str(e)) from e
    finally:
        if app is not None:
            await app.cleanup()


@cli.command()
@click.argument('job_id')
@click.option('--format', 'export_format', type=click.Choice(['csv', 'json']), default='csv',
              help='Export format')
@click.option('--output', type=click.Path(dir_okay=False), help='Output file (default: batch-<id>.<format>)')
@click.pass_context
@handle_async
async def export(ctx: click.Context, job_id: str, export_format: str, output: Optional[str]):
    """Export the results of one batch job."""
    app = None
    try:
        app = await _open_app(ctx.obj['log_level'])
        job = await app.controller.get_job(job_id)
        results = await app.controller.get_results(job_id)
        path = write_export(job, results, export_format, output)
        print_success(f"Exported {len(results)} results to {path}")

    except SparkBatchError as e:
        print_error(e.user_message)
        raise click.ClickException(str(e)) from e
    finally:
        if app is not None:
            await app.cleanup()


@cli.command()
@click.option('--show-values', is_flag=True, help='Print the full configuration')
def config(show_values: bool):
    """Validate the configuration."""
    validation = get_settings().validate_config()

    if validation["valid"]:
        print_success("Configuration is valid")
    else:
        for issue in validation["issues"]:
            print_error(issue)

    for warning in validation["warnings"]:
        print_warning(warning)

    if show_values and validation["config"]:
        console.print_json(json.dumps(validation["config"], default=str))

    if not validation["valid"]:
        raise click.ClickException("Invalid configuration")


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
