"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import catalog, query

app = FastAPI(
    title="GSC Insights",
    version="0.1.0",
    description="Search Console queries with client-side sorting, filtering and paging",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query.router, prefix="/query", tags=["Query"])
app.include_router(catalog.router, tags=["Catalog"])


@app.get("/health")
def health():
    return {"status": "ok"}
