import json
import logging
from pathlib import Path
from typing import List, Optional, Union

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .core.analytics import calculate_analytics
from .core.reader import LogReader, ReaderError
from .core.results import ActionCount, AnalyticsBundle, CategoryCount
from .parsers.base import ParseResult, ParserError
from .parsers.registry import create_parser_factory
from .parsers.zscaler import ZSCALER_LOG_TYPE_ID
from .utils.config import Config
from .utils.constants import SUPPORTED_FORMATS
from .utils.string_utils import truncate

console = Console()


def setup_logging(verbose: bool):
    """Configure logging with rich output"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(message)s", handlers=[RichHandler(rich_tracebacks=True)]
    )


def parse_file(config: Config, file: str, fmt: Optional[str], log_type: int, company_id: int) -> ParseResult:
    """Read and parse one log file, exiting with a message on failure"""
    reader = LogReader(max_bytes=config.get_int("upload.max_bytes"))
    fmt = fmt or reader.detect_format(file)

    try:
        content = reader.read_text(file)
        return create_parser_factory().parse(content, fmt, company_id, log_type)
    except (ReaderError, ParserError) as e:
        raise click.ClickException(str(e))


def write_json(data, output: Optional[str]):
    if output:
        with open(output, "w") as f:
            json.dump(data, f, indent=2)
        console.print(f"Results written to {output}")
    else:
        console.print_json(data=data)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--config", type=click.Path(exists=True), help="Configuration file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: Optional[str]):
    """Proxy Log Analyzer - parse, summarize and serve web proxy logs"""
    setup_logging(verbose)
    ctx.obj = Config(config)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "-fmt", "fmt", type=click.Choice(SUPPORTED_FORMATS, case_sensitive=False),
              help="File format (detected from the extension if not specified)")
@click.option("--log-type", "-t", default=ZSCALER_LOG_TYPE_ID, show_default=True, help="Log type ID")
@click.option("--company-id", "-c", default=1, show_default=True, help="Company ID stamped on records")
@click.option("--limit", "-n", default=20, show_default=True, help="Rows to show in text output")
@click.option("--output", "-o", type=click.Path(), help="Output file (JSON)")
@click.option("--output-format", type=click.Choice(["text", "json"]), default="text")
@click.pass_obj
def parse(
    config: Config,
    file: str,
    fmt: Optional[str],
    log_type: int,
    company_id: int,
    limit: int,
    output: Optional[str],
    output_format: str,
):
    """Parse a log file and show the records it contains"""
    result = parse_file(config, file, fmt, log_type, company_id)

    if output_format == "json" or output:
        write_json({
            "logs": [entry.to_json_dict() for entry in result.logs],
            "parseErrors": result.parse_errors,
        }, output)
        return

    table = Table(title=f"{Path(file).name}: {len(result.logs)} records")
    for column in ("Timestamp", "Source IP", "User", "Destination URL", "Action", "Category", "Response"):
        table.add_column(column)

    for entry in result.logs[:limit]:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.source_ip,
            entry.user_id,
            truncate(entry.destination_url, 60, word_boundary=False),
            entry.action,
            entry.category or "",
            f"{entry.response_time}ms" if entry.response_time is not None else "",
        )
    console.print(table)

    if len(result.logs) > limit:
        console.print(f"... and {len(result.logs) - limit} more records")
    print_errors(result.parse_errors)


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "-fmt", "fmt", type=click.Choice(SUPPORTED_FORMATS, case_sensitive=False),
              help="File format (detected from the extension if not specified)")
@click.option("--log-type", "-t", default=ZSCALER_LOG_TYPE_ID, show_default=True, help="Log type ID")
@click.option("--output", "-o", type=click.Path(), help="Output file (JSON)")
@click.option("--output-format", type=click.Choice(["text", "json"]), default="text")
@click.pass_obj
def summarize(
    config: Config,
    files: List[str],
    fmt: Optional[str],
    log_type: int,
    output: Optional[str],
    output_format: str,
):
    """Compute security analytics over one or more log files"""
    logs = []
    errors: List[str] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        for file_path in files:
            task = progress.add_task(f"Parsing {Path(file_path).name}...", total=None)
            result = parse_file(config, file_path, fmt, log_type, company_id=1)
            logs.extend(result.logs)
            errors.extend(f"{Path(file_path).name}: {error}" for error in result.parse_errors)
            progress.update(task, completed=1, total=1)

    bundle = calculate_analytics(logs)

    if output_format == "json" or output:
        write_json(bundle.to_json_dict(), output)
    else:
        print_summary(bundle)
        print_errors(errors)


@cli.command(name="log-types")
def log_types():
    """List registered log types"""
    factory = create_parser_factory()

    table = Table(title="Log Types")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Table")
    table.add_column("Formats")

    for definition in factory.log_types():
        parser = factory.get_parser(definition.id)
        table.add_row(str(definition.id), definition.name, definition.table_name, ", ".join(parser.formats))

    console.print(table)


@cli.command()
@click.option("--host", help="Bind address (overrides server.host)")
@click.option("--port", type=int, help="Port (overrides server.port)")
@click.pass_obj
def serve(config: Config, host: Optional[str], port: Optional[int]):
    """Start the REST API server"""
    import uvicorn

    from .web.app import create_app

    if host:
        config.set("server.host", host)
    if port:
        config.set("server.port", port)

    try:
        app = create_app(config)
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    uvicorn.run(app, host=config.get("server.host"), port=config.get_int("server.port"))


def distribution_table(title: str, field: str, items: List[Union[ActionCount, CategoryCount]]) -> Table:
    table = Table(title=title)
    table.add_column(field.capitalize())
    table.add_column("Count")
    table.add_column("%")
    for item in items:
        table.add_row(getattr(item, field), str(item.count), f"{item.percentage}%")
    return table


def print_summary(bundle: AnalyticsBundle, console: Console = console):
    """Print a formatted summary of the analytics bundle

    Args:
        bundle: Analytics computed over the parsed logs
        console: Rich console to print to
    """
    console.print("\n[bold]Proxy Log Summary[/bold]")

    table = Table(title="Traffic Summary")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Total Events", str(bundle.total_events))
    table.add_row("Blocked Requests", f"{bundle.blocked_requests} ({bundle.block_rate}%)")
    table.add_row("Unique IPs", str(bundle.unique_ips))
    table.add_row("Unique Users", str(bundle.unique_users))
    table.add_row("Events per IP", str(bundle.avg_events_per_ip))
    table.add_row("Events per User", str(bundle.avg_events_per_user))
    table.add_row(
        "Response Time (min/avg/max)",
        f"{bundle.response_time.min}/{bundle.response_time.avg}/{bundle.response_time.max} ms",
    )
    console.print(table)

    if bundle.action_distribution:
        console.print(distribution_table("Actions", "action", bundle.action_distribution))
    if bundle.top_categories:
        console.print(distribution_table("Top Categories", "category", bundle.top_categories))

    ip_analytics = bundle.ip_security_analytics
    console.print("\n[bold]Suspicious IPs[/bold]")
    if not ip_analytics.suspicious_ips:
        console.print("[italic]No suspicious IPs detected[/italic]")
    else:
        table = Table()
        table.add_column("IP Address")
        table.add_column("Requests")
        table.add_column("Blocked %")
        table.add_column("Restricted")
        table.add_column("Threat")
        for item in ip_analytics.suspicious_ips:
            table.add_row(
                item.ip_address,
                str(item.total_requests),
                f"{item.blocked_percentage}%",
                str(item.restricted_attempts),
                item.threat_level,
            )
        console.print(table)

    console.print("\n[bold]High Frequency IPs[/bold]")
    if not ip_analytics.high_frequency_ips:
        console.print("[italic]No high frequency sources detected[/italic]")
    else:
        table = Table()
        table.add_column("IP Address")
        table.add_column("Requests/min")
        table.add_column("Pattern")
        table.add_column("Bot %")
        for item in ip_analytics.high_frequency_ips:
            table.add_row(
                item.ip_address,
                str(item.requests_per_minute),
                item.pattern,
                str(item.bot_probability),
            )
        console.print(table)

    user_analytics = bundle.user_security_analytics
    console.print("\n[bold]Suspicious Users[/bold]")
    if not user_analytics.suspicious_activity:
        console.print("[italic]No suspicious user activity detected[/italic]")
    else:
        table = Table()
        table.add_column("User")
        table.add_column("Risk")
        table.add_column("Requests")
        table.add_column("Indicators")
        for item in user_analytics.suspicious_activity:
            table.add_row(item.user_id, str(item.risk_score), str(item.total_requests), ", ".join(item.indicators))
        console.print(table)

    console.print("\n[bold]Blocked Domains[/bold]")
    blocked_urls = bundle.url_security_analytics.blocked_urls
    if not blocked_urls:
        console.print("[italic]No blocked domains[/italic]")
    else:
        table = Table()
        table.add_column("Domain")
        table.add_column("Blocks")
        table.add_column("Users")
        table.add_column("Category")
        table.add_column("Severity")
        for item in blocked_urls:
            table.add_row(
                item.domain,
                str(item.block_count),
                str(item.unique_users),
                item.threat_category,
                item.severity,
            )
        console.print(table)


def print_errors(errors: List[str], console: Console = console):
    if not errors:
        return

    console.print(f"\n[bold red]Skipped lines: {len(errors)}[/bold red]")
    for message in errors[:5]:
        console.print(f"- {message}")
    if len(errors) > 5:
        console.print(f"... and {len(errors) - 5} more errors")


if __name__ == "__main__":
    cli()
