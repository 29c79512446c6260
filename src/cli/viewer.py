"""
Paginated terminal viewer.

Renders a `ViewSession` page by page with rich tables and reads one command
per page:

    <Enter>                     next page (finishes after the last page)
    q                           quit
    s <field> <op> <value>      string filter  (exact, contains, notExact, notContains)
    n <field> <op> <number>     numeric filter (>=, <=, >, <, =)
    c                           clear filters

Filter commands restart at page 0. The session's filters are cleared on
every exit path.
"""
from __future__ import annotations

import shlex
from typing import Any, Callable

from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from src.shaping.filters import NumericOperator, StringOperator
from src.shaping.pagination import DISPLAY_PRECISION, PageView, ViewSession, format_row_for_display

HELP_TEXT = (
    "[dim]Enter[/] next page  [dim]q[/] quit  "
    "[dim]s <field> <op> <value>[/] string filter  "
    "[dim]n <field> <op> <number>[/] numeric filter  [dim]c[/] clear filters"
)


def render_page(
    page: PageView,
    columns: list[str],
    precision: int = DISPLAY_PRECISION,
    title: str | None = None,
) -> Table:
    """Build a rich Table for one page; floats are rounded for display only."""
    caption = (
        f"Rows {page.first_row_number}-{page.last_row_number} of {page.total_rows}"
        f" | page {page.page_index + 1}/{max(page.total_pages, 1)}"
    )
    table = Table(title=title, caption=caption, box=box.ROUNDED)
    table.add_column("#", justify="right", style="dim")
    for col in columns:
        table.add_column(col)
    for offset, row in enumerate(page.rows):
        shown = format_row_for_display(row, precision)
        table.add_row(
            str(page.first_row_number + offset),
            *("" if shown.get(col) is None else str(shown.get(col)) for col in columns),
        )
    return table


def _columns(session: ViewSession) -> list[str]:
    cols: list[str] = []
    for row in session.original_rows:
        for key in row:
            if key not in cols:
                cols.append(key)
    return cols


def handle_command(session: ViewSession, command: str) -> str | None:
    """Apply one viewer command to *session*; returns a message to show, if any."""
    text = command.strip()
    if not text:
        session.advance()
        return None
    if text.lower() == "q":
        session.quit()
        return None
    if text.lower() == "c":
        session.clear_filters()
        return "Filters cleared"

    try:
        parts = shlex.split(text)
    except ValueError as exc:
        return f"Could not parse command: {exc}"
    kind = parts[0].lower()
    if kind not in ("s", "n"):
        return f"Unknown command '{parts[0]}'"
    if len(parts) < 4:
        return f"Usage: {kind} <field> <op> <value>"
    field_name, op, value = parts[1], parts[2], " ".join(parts[3:])

    if kind == "s":
        allowed = [o.value for o in StringOperator]
        if op not in allowed:
            return f"Unknown string operator '{op}'. Allowed: {', '.join(allowed)}"
        outcome = session.add_string_filter(field_name, op, value)
    else:
        allowed = [o.value for o in NumericOperator]
        if op not in allowed:
            return f"Unknown numeric operator '{op}'. Allowed: {', '.join(allowed)}"
        try:
            number = float(value)
        except ValueError:
            return f"Numeric filter value must be a number, got '{value}'"
        try:
            outcome = session.add_numeric_filter(field_name, op, number)
        except ValidationError as exc:
            return f"Invalid numeric filter: {exc.errors()[0]['msg']}"

    if outcome.warning:
        return outcome.warning
    return f"{len(outcome.rows)} rows match"


def run_viewer(
    session: ViewSession,
    console: Console | None = None,
    prompt: Callable[[str], str] | None = None,
    precision: int = DISPLAY_PRECISION,
    title: str | None = None,
) -> ViewSession:
    """Drive *session* until it is done. EOF or Ctrl-C quits."""
    console = console or Console()
    prompt = prompt or (lambda text: console.input(text))
    columns = _columns(session)

    try:
        while not session.done:
            page = session.current_page()
            if page.total_rows == 0:
                console.print("[yellow]No rows to display.[/]")
            else:
                console.print(render_page(page, columns, precision, title))
            if session.filters.is_active:
                console.print("Filters: " + "; ".join(session.filters.describe()))
            console.print(HELP_TEXT)
            try:
                command = prompt("> ")
            except (EOFError, KeyboardInterrupt):
                session.quit()
                break
            message = handle_command(session, command)
            if message:
                console.print(f"[cyan]{message}[/]")
    finally:
        session.filters.clear()
    return session


def print_rows(rows: list[dict[str, Any]], console: Console, precision: int = DISPLAY_PRECISION) -> None:
    """Non-interactive dump of *rows* as a single table."""
    session = ViewSession(original_rows=rows, rows_per_page=max(len(rows), 1))
    console.print(render_page(session.current_page(), _columns(session), precision))
