"""
gsc-insights CLI -- run Search Console queries from the terminal.

    gsc-insights query --preset top-queries --range last28
    gsc-insights query -m clicks -m ctr -d page --sort clicks:desc --format csv --save
    gsc-insights presets
    gsc-insights sites
"""
from __future__ import annotations

import datetime
import shlex
import sys

import click
from rich import box
from rich.console import Console
from rich.table import Table

from src.core.config import get_settings
from src.core.errors import ProviderError, QueryValidationError
from src.core.logging import get_logger
from src.insights.export import EXPORT_FORMATS, render_export, save_output
from src.insights.service import run_query
from src.query.catalog import load_catalog
from src.query.dates import DATE_RANGE_TYPES
from src.query.descriptor import DataSource, QueryRequest
from src.shaping.filters import NumericFilter, NumericOperator, StringFilter, StringOperator
from src.shaping.pagination import ViewSession
from src.sources.searchconsole import SearchConsoleFetcher
from src.cli.viewer import print_rows, run_viewer

logger = get_logger(__name__)
console = Console()


def _fail(message: str) -> None:
    console.print(f"[red]ERROR:[/] {message}")
    sys.exit(1)


def _split_filter(raw: str, kind: str) -> tuple[str, str, str]:
    try:
        parts = shlex.split(raw)
    except ValueError as exc:
        raise click.BadParameter(f"cannot parse {kind} filter '{raw}': {exc}")
    if len(parts) < 3:
        raise click.BadParameter(f"{kind} filter must look like '<field> <op> <value>', got '{raw}'")
    return parts[0], parts[1], " ".join(parts[2:])


def parse_string_filters(values: tuple[str, ...]) -> list[StringFilter]:
    allowed = [o.value for o in StringOperator]
    filters = []
    for raw in values:
        field_name, op, value = _split_filter(raw, "string")
        if op not in allowed:
            raise click.BadParameter(f"unknown string operator '{op}'. Allowed: {', '.join(allowed)}")
        filters.append(StringFilter(field=field_name, operator=op, value=value))
    return filters


def parse_numeric_filters(values: tuple[str, ...]) -> list[NumericFilter]:
    allowed = [o.value for o in NumericOperator]
    filters = []
    for raw in values:
        field_name, op, value = _split_filter(raw, "numeric")
        if op not in allowed:
            raise click.BadParameter(f"unknown numeric operator '{op}'. Allowed: {', '.join(allowed)}")
        try:
            number = float(value)
        except ValueError:
            raise click.BadParameter(f"numeric filter value must be a number, got '{value}'")
        filters.append(NumericFilter(field=field_name, operator=op, value=number))
    return filters


# ─── CLI ─────────────────────────────────────────────────────────────────


@click.group()
def cli():
    """GSC Insights -- Search Console queries with sorting, filtering and paging."""
    pass


@cli.command()
@click.option("--preset", "-p", help="Preset id (see `gsc-insights presets`).")
@click.option("--source", type=click.Choice([s.value for s in DataSource]),
              help="Data source (default: the preset's source, else searchconsole).")
@click.option("--metric", "-m", "metrics", multiple=True, help="Metric for an ad-hoc query (repeatable).")
@click.option("--dimension", "-d", "dimensions", multiple=True, help="Dimension for an ad-hoc query (repeatable).")
@click.option("--range", "date_range_type", type=click.Choice(DATE_RANGE_TYPES), default="last7",
              show_default=True, help="Date range shorthand.")
@click.option("--start", "custom_start", help="Custom range start (YYYY-MM-DD).")
@click.option("--end", "custom_end", help="Custom range end (YYYY-MM-DD), defaults to today when --start is given.")
@click.option("--limit", type=int, help="Row limit for ad-hoc queries.")
@click.option("--sort", "sort", help="Sort levels, e.g. 'clicks:desc,query:asc', or 'none'.")
@click.option("--where", "where", multiple=True,
              help="String filter '<field> <op> <value>' (exact, contains, notExact, notContains).")
@click.option("--num", "num", multiple=True, help="Numeric filter '<field> <op> <number>' (>=, <=, >, <, =).")
@click.option("--format", "output_format", type=click.Choice(["table", *EXPORT_FORMATS]),
              help="Output format (default from settings).")
@click.option("--save", is_flag=True, help="Write json/csv output to the output directory.")
@click.option("--site", help="Search Console property (default GSC_SITE_URL).")
@click.option("--no-cache", is_flag=True, help="Bypass the fetched-row cache.")
@click.option("--no-pager", is_flag=True, help="Print every row at once instead of paging.")
def query(preset, source, metrics, dimensions, date_range_type, custom_start, custom_end, limit,
          sort, where, num, output_format, save, site, no_cache, no_pager):
    """Run a preset or ad-hoc query and show, export or save the rows."""
    settings = get_settings()
    output_format = output_format or settings.default_output_format

    if preset and (metrics or dimensions):
        _fail("Use either --preset or --metric/--dimension, not both.")
    if custom_start and not custom_end:
        custom_end = datetime.date.today().isoformat()

    catalog = load_catalog()
    if source is None:
        chosen = catalog.preset(preset) if preset else None
        source = chosen.source if chosen and chosen.source != "any" else DataSource.SEARCHCONSOLE.value
    source_catalog = catalog.source(source)

    request = QueryRequest(
        mode="preset" if preset else "adhoc",
        source=source,
        preset=preset,
        metrics=list(metrics) or (source_catalog.metric_fields() if source_catalog else []),
        dimensions=list(dimensions) or (source_catalog.dimension_fields()[:1] if source_catalog else []),
        limit=limit,
        date_range_type=date_range_type,
        custom_start=custom_start,
        custom_end=custom_end,
    )
    fetcher = None
    if source == DataSource.SEARCHCONSOLE.value:
        fetcher = SearchConsoleFetcher(site or settings.gsc_site_url, settings=settings)

    try:
        result = run_query(
            request,
            sort=sort,
            string_filters=parse_string_filters(where),
            numeric_filters=parse_numeric_filters(num),
            fetcher=fetcher,
            use_cache=not no_cache,
            settings=settings,
        )
    except QueryValidationError as exc:
        for error in exc.errors:
            console.print(f"[red]-[/] {error}")
        _fail("Query validation failed.")
    except ProviderError as exc:
        _fail(str(exc))

    for warning in result.warnings:
        console.print(f"[yellow]WARNING:[/] {warning}")

    if output_format == "table":
        if save:
            console.print("[yellow]--save applies to json/csv output only.[/]")
        if no_pager:
            print_rows(result.rows, console, settings.display_precision)
            return
        session = ViewSession(
            original_rows=result.fetched_rows,
            sort_spec=result.sort_spec,
            filters=result.filters,
            rows_per_page=settings.rows_per_page,
        )
        title = f"{preset or 'ad-hoc'} | {result.descriptor.date_range.start} .. {result.descriptor.date_range.end}"
        run_viewer(session, console, precision=settings.display_precision, title=title)
        return

    content = render_export(result.rows, output_format)
    if save:
        path = save_output(content, output_format, settings.output_dir)
        console.print(f"[green]Saved[/] {len(result.rows)} rows to {path}")
    else:
        click.echo(content)


@cli.command()
@click.option("--source", default=DataSource.SEARCHCONSOLE.value, show_default=True)
def presets(source):
    """List the query presets available for a source."""
    catalog = load_catalog()
    default_limit = get_settings().default_limit
    items = catalog.presets_for_source(source)
    if not items:
        _fail(f"No presets for source '{source}'.")

    table = Table(title=f"Presets -- {source}", box=box.ROUNDED)
    table.add_column("ID", style="bold")
    table.add_column("Label")
    table.add_column("Dimensions")
    table.add_column("Metrics")
    table.add_column("Order", style="dim")
    table.add_column("Limit", justify="right")
    for p in items:
        order = ", ".join(f"{o.field} {'desc' if o.descending else 'asc'}" for o in p.order_bys)
        table.add_row(p.id, p.label, ", ".join(p.dimensions), ", ".join(p.metrics),
                      order or "-", str(p.limit or default_limit))
    console.print(table)


@cli.command()
def sites():
    """List the Search Console properties the stored credentials can see."""
    settings = get_settings()
    try:
        entries = SearchConsoleFetcher(settings.gsc_site_url, settings=settings).list_sites()
    except ProviderError as exc:
        _fail(str(exc))

    if not entries:
        console.print("[yellow]No Search Console properties found.[/]")
        return
    table = Table(title=f"Search Console -- {len(entries)} properties", box=box.ROUNDED)
    table.add_column("Site URL", style="bold")
    table.add_column("Permission")
    for entry in entries:
        table.add_row(entry.get("siteUrl", ""), entry.get("permissionLevel", ""))
    console.print(table)


if __name__ == "__main__":
    cli()
