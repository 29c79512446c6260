"""
Streamlit UI -- GSC Insights.

Features:
  - Preset or ad-hoc queries against Search Console or the GA4 BigQuery export
  - Sidebar with the source schema, presets and cache stats
  - Multi-level sort builder and string / numeric filters
  - Paged results table with warnings and descriptor panel
  - CSV download of the full sorted + filtered result
"""
import os

import streamlit as st
import httpx
import pandas as pd


API_BASE = os.getenv("API_BASE_URL", "http://localhost:8000")
_TIMEOUT = 60
_NO_SORT = "(none)"
_SOURCES = {"searchconsole": "Search Console", "bigquery": "BigQuery (GA4 export)"}

st.set_page_config(
    page_title="GSC Insights",
    page_icon="mag",
    layout="wide",
    initial_sidebar_state="expanded",
)


if "schema" not in st.session_state:
    st.session_state.schema = None

if "presets" not in st.session_state:
    st.session_state.presets = []

if "last_payload" not in st.session_state:
    st.session_state.last_payload = None

if "page" not in st.session_state:
    st.session_state.page = 0

if "loaded_source" not in st.session_state:
    st.session_state.loaded_source = None



def _load_metadata(source: str):
    """Fetch /schema and /presets for *source* from the API; cache in session_state."""
    params = {"source": source}
    try:
        st.session_state.schema = httpx.get(f"{API_BASE}/schema", params=params, timeout=5).json()
        st.session_state.presets = httpx.get(f"{API_BASE}/presets", params=params, timeout=5).json()
        st.session_state.loaded_source = source
    except Exception:
        st.session_state.schema = None
        st.session_state.presets = []


def _fetch_cache_stats() -> dict | None:
    try:
        return httpx.get(f"{API_BASE}/query/cache/stats", timeout=3).json()
    except Exception:
        return None


def _parse_filter_lines(text: str, numeric: bool) -> tuple[list[dict], list[str]]:
    """Turn '<field> <op> <value>' lines into filter dicts; returns (filters, problems)."""
    filters, problems = [], []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(maxsplit=2)
        if len(parts) < 3:
            problems.append(f"Ignored filter line '{line}': expected '<field> <op> <value>'")
            continue
        field, op, value = parts
        if numeric:
            try:
                value = float(value)
            except ValueError:
                problems.append(f"Ignored numeric filter '{line}': '{value}' is not a number")
                continue
        filters.append({"field": field, "operator": op, "value": value})
    return filters, problems


def _post_query(payload: dict) -> httpx.Response:
    endpoint = "preset" if "preset" in payload else "adhoc"
    return httpx.post(f"{API_BASE}/query/{endpoint}", json=payload, timeout=_TIMEOUT)


with st.sidebar:
    st.title("Schema")

    source = st.selectbox("Source", _SOURCES, format_func=_SOURCES.get)
    if (st.button("Refresh", use_container_width=True) or st.session_state.schema is None
            or st.session_state.loaded_source != source):
        _load_metadata(source)

    schema = st.session_state.schema

    if schema:
        st.subheader("Metrics")
        st.markdown("\n".join(f"- **{m}**" for m in schema.get("metrics", [])))
        st.subheader("Dimensions")
        st.markdown("\n".join(f"- **{d}**" for d in schema.get("dimensions", [])))
        st.divider()
        st.subheader("Limits")
        st.write(f"Default limit: **{schema.get('default_limit')}**")
        st.write(f"Max rows: **{schema.get('max_rows')}**")
        st.write(f"Rows per page: **{schema.get('rows_per_page')}**")
    else:
        st.info("API not reachable -- start the FastAPI server first.\n\n```\nuvicorn src.api.main:app --reload\n```")

    st.divider()

    # ── Cache Stats ─────────────────────────────────────
    st.subheader("Cache")
    cache_stats = _fetch_cache_stats()
    if cache_stats:
        c1, c2 = st.columns(2)
        c1.metric("Entries", cache_stats.get("size", 0))
        c2.metric("Hit Rate", f"{cache_stats.get('hit_rate', 0):.0%}")
        if st.button("Clear cache", use_container_width=True):
            try:
                httpx.post(f"{API_BASE}/query/cache/clear", timeout=3)
                st.success("Cache cleared!")
            except Exception:
                st.warning("Could not clear cache.")

    st.divider()
    st.caption("GSC Insights v0.1")



st.title("GSC Insights")
st.markdown("Query Search Console or the GA4 BigQuery export, then sort, filter and page the rows.")

if not schema:
    st.stop()

metrics = schema.get("metrics", [])
dimensions = schema.get("dimensions", [])
presets = st.session_state.presets

mode = st.radio("Query", ["Preset", "Ad-hoc"], horizontal=True)

payload: dict = {"source": source}
selectable: list[str] = []
if mode == "Preset":
    labels = {p["id"]: f"{p['label']} ({p['id']})" for p in presets}
    preset_id = st.selectbox("Preset", list(labels), format_func=labels.get)
    if preset_id:
        payload["preset"] = preset_id
        chosen = next(p for p in presets if p["id"] == preset_id)
        st.caption(chosen.get("description", ""))
        selectable = chosen["dimensions"] + chosen["metrics"]
else:
    c1, c2, c3 = st.columns([2, 2, 1])
    picked_metrics = c1.multiselect("Metrics", metrics, default=metrics)
    picked_dims = c2.multiselect("Dimensions", dimensions, default=dimensions[:1])
    limit = c3.number_input("Limit", min_value=1, max_value=schema.get("max_rows", 100000),
                            value=schema.get("default_limit", 1000))
    payload.update({"metrics": picked_metrics, "dimensions": picked_dims, "limit": int(limit)})
    selectable = picked_dims + picked_metrics

c1, c2, c3 = st.columns(3)
range_type = c1.selectbox("Date range", schema.get("date_range_types", ["last7"]))
payload["date_range_type"] = range_type
if range_type == "custom":
    payload["custom_start"] = c2.date_input("Start").isoformat()
    payload["custom_end"] = c3.date_input("End").isoformat()


# ── Sort builder ────────────────────────────────────────
with st.expander("Sort", expanded=False):
    st.caption("Leave every level at '(none)' to use the query's default order.")
    sort_levels = []
    for level in range(3):
        s1, s2 = st.columns([3, 1])
        column = s1.selectbox(f"Level {level + 1}", [_NO_SORT, *selectable], key=f"sort_col_{level}")
        direction = s2.selectbox("Direction", ["desc", "asc"], key=f"sort_dir_{level}")
        if column != _NO_SORT:
            sort_levels.append({"column": column, "direction": direction})
    if sort_levels:
        payload["sort"] = sort_levels


# ── Filters ─────────────────────────────────────────────
with st.expander("Filters", expanded=False):
    f1, f2 = st.columns(2)
    string_text = f1.text_area(
        "String filters",
        placeholder="query contains shoes\ncountry exact usa",
        help=f"Operators: {', '.join(schema.get('string_filter_operators', []))}",
    )
    numeric_text = f2.text_area(
        "Numeric filters",
        placeholder="clicks >= 10\nposition < 5",
        help=f"Operators: {', '.join(schema.get('numeric_filter_operators', []))}",
    )
    string_filters, string_problems = _parse_filter_lines(string_text, numeric=False)
    numeric_filters, numeric_problems = _parse_filter_lines(numeric_text, numeric=True)
    for problem in string_problems + numeric_problems:
        st.warning(problem)
    payload["string_filters"] = string_filters
    payload["numeric_filters"] = numeric_filters


if st.button("Run query", type="primary"):
    st.session_state.last_payload = payload
    st.session_state.page = 0

active = st.session_state.last_payload
if active is None:
    st.stop()

with st.spinner(f"Querying {_SOURCES[active['source']]}..."):
    try:
        resp = _post_query({**active, "page": st.session_state.page})
        resp.raise_for_status()
        data = resp.json()
    except httpx.ConnectError:
        st.error("Cannot reach the API. Start it with:\n```\nuvicorn src.api.main:app --reload\n```")
        st.stop()
    except httpx.HTTPStatusError as exc:
        detail = exc.response.json().get("detail") if exc.response.headers.get(
            "content-type", "").startswith("application/json") else exc.response.text
        if isinstance(detail, dict) and detail.get("errors"):
            for error in detail["errors"]:
                st.error(error)
        else:
            st.error(f"API returned {exc.response.status_code}: {detail}")
        st.stop()
    except Exception as exc:
        st.error(f"Unexpected error: {exc}")
        st.stop()

cache_badge = "  ·  cached" if data.get("cached") else ""
st.success(
    f"{data['total_rows']} of {data['total_fetched']} rows  ·  {data.get('latency_ms', 0)} ms{cache_badge}"
)
for warning in data.get("warnings", []):
    st.warning(warning)
if data.get("filters"):
    st.caption("Filters: " + "; ".join(data["filters"]))
if data.get("sort"):
    st.caption(f"Sort: {data['sort']}")

page = data.get("page") or {}
rows = data.get("rows", [])
if rows:
    st.dataframe(pd.DataFrame(rows).round(3), use_container_width=True)
    st.caption(
        f"Rows {page.get('first_row', 0)}-{page.get('last_row', 0)} of {data['total_rows']}"
        f"  ·  page {page.get('page_index', 0) + 1}/{max(page.get('total_pages', 1), 1)}"
    )
else:
    st.info("No rows match.")

p1, p2, p3 = st.columns([1, 1, 4])
if p1.button("Previous", disabled=st.session_state.page == 0):
    st.session_state.page -= 1
    st.rerun()
if p2.button("Next", disabled=page.get("page_index", 0) + 1 >= page.get("total_pages", 1)):
    st.session_state.page += 1
    st.rerun()

if rows:
    try:
        csv_resp = _post_query({**active, "output_format": "csv"})
        csv_resp.raise_for_status()
        p3.download_button(
            "Download CSV",
            csv_resp.text,
            file_name="gsc-data.csv",
            mime="text/csv",
        )
    except httpx.HTTPError:
        p3.warning("CSV export unavailable.")

with st.expander("Query descriptor", expanded=False):
    st.json(data.get("descriptor", {}))
