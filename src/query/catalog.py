"""
Loads, parses, and caches the source catalog YAML into strongly-typed objects.

The catalog is the single source of truth for:
  - per-source metrics and dimensions (friendly name -> provider field)
  - query presets (fixed metrics / dimensions / order / limit)

`Catalog.preset(id)` is the preset registry lookup used by the normalizer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

from src.core.config import get_settings
from src.query.descriptor import OrderBy, ProviderFilter


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class SourceCatalog:
    name: str
    label: str
    metrics: dict[str, str] = field(default_factory=dict)
    dimensions: dict[str, str] = field(default_factory=dict)

    def metric_fields(self) -> list[str]:
        return list(self.metrics.values())

    def dimension_fields(self) -> list[str]:
        return list(self.dimensions.values())


@dataclass(frozen=True)
class PresetDefinition:
    id: str
    label: str
    source: str  # a source name or "any"
    metrics: list[str]
    dimensions: list[str]
    description: str = ""
    order_bys: list[OrderBy] = field(default_factory=list)
    limit: int | None = None
    filters: list[ProviderFilter] = field(default_factory=list)

    def available_for(self, source: str) -> bool:
        return self.source in (source, "any")


@dataclass
class Catalog:
    """Fully parsed source catalog."""

    version: int
    sources: dict[str, SourceCatalog]       # keyed by source name
    presets: dict[str, PresetDefinition]    # keyed by preset id, file order

    # ── Convenience look-ups ─────────────────────────

    def source(self, name: str) -> SourceCatalog | None:
        return self.sources.get(name)

    def preset(self, preset_id: str) -> PresetDefinition | None:
        return self.presets.get(preset_id)

    def presets_for_source(self, source: str) -> list[PresetDefinition]:
        return [p for p in self.presets.values() if p.available_for(source)]

    def get_source_names(self) -> list[str]:
        return list(self.sources.keys())

    def get_preset_ids(self) -> list[str]:
        return list(self.presets.keys())


# ── Parsing ──────────────────────────────────────────────

def _parse_order_by(raw: dict[str, Any]) -> OrderBy:
    name = raw.get("metric") or raw.get("dimension") or raw.get("field")
    if not name:
        raise ValueError(f"Preset order_by entry names no field: {raw!r}")
    return OrderBy(field=name, descending=bool(raw.get("desc", False)))


def _parse_filter(raw: dict[str, Any]) -> ProviderFilter:
    return ProviderFilter(
        dimension=raw["dimension"],
        operator=raw.get("operator", "equals"),
        expression=str(raw["expression"]),
    )


def _parse_source(name: str, raw: dict[str, Any]) -> SourceCatalog:
    return SourceCatalog(
        name=name,
        label=raw.get("label", name),
        metrics=dict(raw.get("metrics") or {}),
        dimensions=dict(raw.get("dimensions") or {}),
    )


def _parse_preset(raw: dict[str, Any]) -> PresetDefinition:
    return PresetDefinition(
        id=raw["id"],
        label=raw.get("label", raw["id"]),
        source=raw.get("source", "any"),
        metrics=list(raw.get("metrics") or []),
        dimensions=list(raw.get("dimensions") or []),
        description=raw.get("description", ""),
        order_bys=[_parse_order_by(o) for o in raw.get("order_bys") or []],
        limit=raw.get("limit"),
        filters=[_parse_filter(f) for f in raw.get("filters") or []],
    )


def parse_catalog(raw_yaml: dict[str, Any]) -> Catalog:
    sources = {
        name: _parse_source(name, body or {})
        for name, body in (raw_yaml.get("sources") or {}).items()
    }
    presets = {p["id"]: _parse_preset(p) for p in raw_yaml.get("presets") or []}
    return Catalog(
        version=raw_yaml.get("version", 1),
        sources=sources,
        presets=presets,
    )


# ── Public API ───────────────────────────────────────────

def load_catalog_file(path: Path) -> Catalog:
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return parse_catalog(raw)


@lru_cache
def load_catalog() -> Catalog:
    """Load and cache the configured catalog from YAML."""
    return load_catalog_file(get_settings().resolved_catalog_path)
