"""
Streamlit page -- Query History.
"""
import os

import streamlit as st
import httpx
import pandas as pd

API_BASE = os.getenv("API_BASE_URL", "http://localhost:8000")

st.set_page_config(page_title="Query History", layout="wide")
st.title("Query History")
st.caption("Browse past queries stored in `gsc_query_logs`.")

limit = st.slider("Entries", min_value=10, max_value=500, value=50, step=10)
only_failures = st.checkbox("Only failed queries")

try:
    resp = httpx.get(f"{API_BASE}/history", params={"limit": limit}, timeout=10)
    resp.raise_for_status()
    entries = resp.json().get("entries", [])
except httpx.HTTPError as exc:
    st.error(f"Could not load history: {exc}")
    st.stop()

if only_failures:
    entries = [e for e in entries if not e.get("success")]

if not entries:
    st.info("No queries logged yet.")
    st.stop()

df = pd.DataFrame(entries)
for col in ("metrics", "dimensions", "filters", "errors"):
    df[col] = df[col].apply(lambda items: ", ".join(items) if items else "")
st.dataframe(
    df[["created_at", "mode", "preset", "start_date", "end_date", "dimensions", "metrics",
        "sort_spec", "filters", "fetched_rows", "result_rows", "success", "errors", "latency_ms"]],
    use_container_width=True,
)
