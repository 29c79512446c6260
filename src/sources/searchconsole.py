"""
Search Console result fetcher.

`SearchConsoleFetcher.fetch(descriptor)` runs a Search Analytics query and
returns flat row dicts:
  1. Loads stored authorized-user credentials (the consent flow lives elsewhere)
  2. Pages through results with startRow until `descriptor.limit` rows are collected
  3. Keeps only the requested dimensions / metrics; absent metrics stay absent
  4. Maps HttpError statuses to operator-readable ProviderError messages
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from src.core.config import Settings, get_settings
from src.core.errors import ProviderError
from src.core.logging import get_logger
from src.query.descriptor import ProviderFilter, QueryDescriptor

logger = get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/webmasters.readonly"]

# Hard cap the API applies to rowLimit
_API_MAX_ROW_LIMIT = 25_000


def load_credentials(token_file: str) -> Credentials:
    """Load and, if needed, refresh the stored OAuth credentials."""
    path = Path(token_file)
    if not path.exists():
        raise ProviderError(
            f"No stored Search Console credentials at {path}. "
            f"Authenticate with Google first."
        )
    creds = Credentials.from_authorized_user_file(str(path), SCOPES)
    if not creds.valid:
        if not (creds.expired and creds.refresh_token):
            raise ProviderError("Stored Search Console credentials are invalid. Re-authenticate.")
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            raise ProviderError(f"Could not refresh Search Console credentials: {exc}") from exc
        path.write_text(creds.to_json(), encoding="utf-8")
        logger.info("Refreshed Search Console credentials")
    return creds


def build_service(credentials: Credentials) -> Any:
    return build("searchconsole", "v1", credentials=credentials, cache_discovery=False)


def build_dimension_filter_groups(filters: tuple[ProviderFilter, ...]) -> list[dict[str, Any]] | None:
    if not filters:
        return None
    return [{
        "groupType": "and",
        "filters": [
            {"dimension": f.dimension, "operator": f.operator, "expression": f.expression}
            for f in filters
        ],
    }]


def build_request_body(
    descriptor: QueryDescriptor,
    row_limit: int,
    start_row: int = 0,
    search_type: str = "web",
    data_state: str = "final",
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "startDate": descriptor.date_range.start.isoformat(),
        "endDate": descriptor.date_range.end.isoformat(),
        "dimensions": list(descriptor.dimensions),
        "rowLimit": row_limit,
        "startRow": start_row,
        "type": search_type,
        "dataState": data_state,
    }
    groups = build_dimension_filter_groups(descriptor.filters)
    if groups:
        body["dimensionFilterGroups"] = groups
    return body


def rows_from_response(response: dict[str, Any], descriptor: QueryDescriptor) -> list[dict[str, Any]]:
    """Flatten API rows into records restricted to the descriptor's fields."""
    rows: list[dict[str, Any]] = []
    for api_row in response.get("rows", []):
        keys = api_row.get("keys") or []
        record: dict[str, Any] = {}
        for index, dimension in enumerate(descriptor.dimensions):
            record[dimension] = keys[index] if index < len(keys) else ""
        for metric in descriptor.metrics:
            if api_row.get(metric) is not None:
                record[metric] = api_row[metric]
        rows.append(record)
    return rows


def _error_detail(exc: HttpError) -> str:
    return getattr(exc, "reason", None) or str(exc)


def _provider_error(exc: HttpError, site_url: str) -> ProviderError:
    status = exc.resp.status if exc.resp is not None else None
    if status == 403:
        message = (
            f"GSC access denied. Check that your account has access to site {site_url} "
            f"and holds a Search Console permission."
        )
    elif status == 404:
        message = f"GSC site {site_url} not found. Check your site URL."
    elif status == 400:
        message = f"Invalid GSC query: {_error_detail(exc)}"
    else:
        message = f"GSC API error: {_error_detail(exc)}"
    return ProviderError(message, status=status)


class SearchConsoleFetcher:
    """Fetches Search Analytics rows for one Search Console property.

    Parameters
    ----------
    site_url : str
        The property URL (``https://example.com/`` or ``sc-domain:example.com``).
    service : optional
        A prebuilt discovery client; built from stored credentials when omitted.
    """

    def __init__(self, site_url: str, service: Any = None, settings: Settings | None = None):
        self.site_url = site_url
        self._service = service
        self._settings = settings or get_settings()

    @property
    def service(self) -> Any:
        if self._service is None:
            self._service = build_service(load_credentials(self._settings.gsc_token_file))
        return self._service

    def fetch(self, descriptor: QueryDescriptor) -> list[dict[str, Any]]:
        if not self.site_url:
            raise ProviderError("GSC site URL is required. Set GSC_SITE_URL or select a site.")

        page_size = min(self._settings.gsc_page_size, _API_MAX_ROW_LIMIT)
        rows: list[dict[str, Any]] = []
        logger.info("Querying GSC site %s | %s..%s | dims=%s | limit=%d",
                    self.site_url, descriptor.date_range.start, descriptor.date_range.end,
                    list(descriptor.dimensions), descriptor.limit)

        while len(rows) < descriptor.limit:
            row_limit = min(page_size, descriptor.limit - len(rows))
            body = build_request_body(
                descriptor,
                row_limit=row_limit,
                start_row=len(rows),
                search_type=self._settings.gsc_search_type,
                data_state=self._settings.gsc_data_state,
            )
            try:
                response = self.service.searchanalytics().query(
                    siteUrl=self.site_url, body=body
                ).execute()
            except HttpError as exc:
                logger.exception("GSC query failed")
                raise _provider_error(exc, self.site_url) from exc

            batch = rows_from_response(response, descriptor)
            rows.extend(batch)
            if len(batch) < row_limit:
                break

        logger.info("GSC returned %d rows (requested limit: %d)", len(rows), descriptor.limit)
        return rows

    def list_sites(self) -> list[dict[str, Any]]:
        """Return the properties visible to the stored credentials."""
        try:
            response = self.service.sites().list().execute()
        except HttpError as exc:
            logger.exception("GSC site listing failed")
            status = exc.resp.status if exc.resp is not None else None
            if status == 401:
                raise ProviderError("Authentication failed. Re-authenticate with Google.", status) from exc
            if status == 403:
                raise ProviderError(
                    "Access denied. Make sure your Google account has Search Console properties.",
                    status,
                ) from exc
            raise ProviderError(f"Failed to fetch GSC sites: {_error_detail(exc)}", status) from exc
        return response.get("siteEntry", [])
