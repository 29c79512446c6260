"""
JSON / CSV export of shaped rows.

Exports always receive the full sorted + filtered row set and never the
display-rounded copies the table viewer shows.
"""
from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any

import pandas as pd

from src.core.logging import get_logger

logger = get_logger(__name__)

EXPORT_FORMATS = ("json", "csv")


def rows_to_json(rows: list[dict[str, Any]]) -> str:
    return json.dumps(rows, indent=2, default=str)


def rows_to_csv(rows: list[dict[str, Any]]) -> str:
    """CSV with a header row; column order follows first appearance across rows."""
    if not rows:
        return ""
    return pd.DataFrame(rows).to_csv(index=False)


def render_export(rows: list[dict[str, Any]], fmt: str) -> str:
    if fmt == "json":
        return rows_to_json(rows)
    if fmt == "csv":
        return rows_to_csv(rows)
    raise ValueError(f"Unsupported export format '{fmt}'. Allowed: {', '.join(EXPORT_FORMATS)}")


def save_output(content: str, fmt: str, out_dir: str | Path) -> Path:
    """Write *content* to a timestamped file under *out_dir* and return its path."""
    directory = Path(out_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.datetime.now().strftime("%Y-%m-%dT%H-%M-%S-%f")
    path = directory / f"{stamp}.{fmt}"
    path.write_text(content, encoding="utf-8")
    logger.info("Saved %s output to %s", fmt, path)
    return path
