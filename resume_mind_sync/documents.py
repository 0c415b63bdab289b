"""Resume document endpoints and the helpers the dashboard builds on them."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote, urlencode

from .api import ApiClient
from .cache import ResourceCache
from .errors import ApiError
from .models.polling import StatusReport
from .polling import StatusCheck

logger = logging.getLogger(__name__)

DOCUMENTS_BASE = "/documents"

# Statuses reported while an analysis is still running.
PROCESSING_STATUSES = ("uploading", "parsing", "validating", "extracting", "processing")
TERMINAL_STATUSES = frozenset({"completed", "failed", "invalid"})


def is_terminal_status(status: str | None) -> bool:
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class DocumentFilters:
    status_filter: str | None = None
    limit: int = 20
    offset: int = 0

    def next_page(self) -> DocumentFilters:
        return replace(self, offset=self.offset + self.limit)

    def with_status_filter(self, status_filter: str | None) -> DocumentFilters:
        """Change the status filter and go back to the first page."""
        return replace(self, status_filter=status_filter, offset=0)


def documents_path(filters: DocumentFilters | None = None) -> str:
    """Build the list endpoint path, which doubles as its cache key.

    Example:
        >>> documents_path(DocumentFilters(status_filter="completed"))
        '/documents?limit=20&offset=0&status_filter=completed'
    """
    f = filters or DocumentFilters()
    params: dict[str, Any] = {"limit": f.limit, "offset": f.offset}
    if f.status_filter:
        params["status_filter"] = f.status_filter
    return f"{DOCUMENTS_BASE}?{urlencode(params)}"


def document_path(document_id: str) -> str:
    return f"{DOCUMENTS_BASE}/{quote(str(document_id), safe='')}"


def document_status_path(document_id: str) -> str:
    return f"{document_path(document_id)}/status"


async def list_documents(
    client: ApiClient, filters: DocumentFilters | None = None
) -> list[dict[str, Any]]:
    data = await client.get(documents_path(filters))
    return data if isinstance(data, list) else []


async def get_document_status(client: ApiClient, document_id: str) -> StatusReport:
    data = await client.get(document_status_path(document_id))
    if not isinstance(data, dict) or not data.get("status"):
        raise ApiError(0, f"Malformed status response for {document_id}")
    return StatusReport(
        status=str(data["status"]),
        progress_message=data.get("progress_message"),
        error_message=data.get("error_message"),
    )


def status_checker(client: ApiClient) -> StatusCheck:
    """Status-check capability for ``PollingSupervisor``."""
    return functools.partial(get_document_status, client)


async def delete_document(client: ApiClient, document_id: str) -> None:
    await client.delete(document_path(document_id))


async def upload_document(
    client: ApiClient, filename: str, content: bytes
) -> dict[str, Any]:
    data = await client.upload(f"{DOCUMENTS_BASE}/upload", filename, content)
    if not isinstance(data, dict) or "document_id" not in data:
        raise ApiError(0, "Malformed upload response")
    return data


def optimistic_document(
    upload: dict[str, Any], filename: str, created_at: datetime | None = None
) -> dict[str, Any]:
    """List item shown for a freshly uploaded file before the server lists it."""
    created = created_at or datetime.now(timezone.utc)
    ext = filename.rsplit(".", 1)[-1] if "." in filename else "unknown"
    return {
        "id": upload["document_id"],
        "original_filename": filename,
        "file_type": ext or "unknown",
        "document_type": None,
        "status": upload.get("status", "uploading"),
        "created_at": created.isoformat(),
    }


def update_document(
    documents: list[dict[str, Any]] | None,
    document_id: str,
    updates: dict[str, Any],
) -> list[dict[str, Any]]:
    """Return a copy of ``documents`` with ``updates`` merged into one document."""
    return [
        {**doc, **updates} if doc.get("id") == document_id else doc
        for doc in documents or []
    ]


def apply_status(
    documents: list[dict[str, Any]] | None,
    document_id: str,
    status: str,
    progress_message: str | None = None,
    error_message: str | None = None,
) -> list[dict[str, Any]]:
    """Return a copy of ``documents`` with one document's status replaced."""
    updates: dict[str, Any] = {"status": status}
    if progress_message is not None:
        updates["progress_message"] = progress_message
    if error_message is not None:
        updates["error_message"] = error_message
    return update_document(documents, document_id, updates)


def merge_page(
    documents: list[dict[str, Any]] | None,
    page: list[dict[str, Any]],
    offset: int,
) -> list[dict[str, Any]]:
    """First page replaces the list; later pages are appended."""
    if offset == 0:
        return list(page)
    return [*(documents or []), *page]


def page_has_more(page: list[dict[str, Any]], limit: int) -> bool:
    return len(page) == limit


class DocumentPager:
    """Accumulates list pages for one set of filters.

    ``filters.offset`` always points at the last page loaded, and only moves
    after that page arrived, so a failed ``load_more`` can simply be retried.
    """

    def __init__(self, client: ApiClient, filters: DocumentFilters | None = None) -> None:
        self._client = client
        self.filters = replace(filters or DocumentFilters(), offset=0)
        self.documents: list[dict[str, Any]] = []
        self.has_more = True
        self.error: ApiError | None = None
        self.loaded = False

    async def refresh(self) -> list[dict[str, Any]]:
        await self._load(replace(self.filters, offset=0))
        return self.documents

    async def load_more(self) -> list[dict[str, Any]]:
        if not self.loaded:
            return await self.refresh()
        if self.has_more:
            await self._load(self.filters.next_page())
        return self.documents

    async def set_status_filter(self, status_filter: str | None) -> list[dict[str, Any]]:
        self.filters = self.filters.with_status_filter(status_filter)
        return await self.refresh()

    def update_document(self, document_id: str, updates: dict[str, Any]) -> None:
        self.documents = update_document(self.documents, document_id, updates)

    async def _load(self, filters: DocumentFilters) -> None:
        try:
            page = await list_documents(self._client, filters)
        except ApiError as exc:
            logger.warning("Loading %s failed: %s", documents_path(filters), exc)
            self.error = exc
            raise
        self.documents = merge_page(self.documents, page, filters.offset)
        self.has_more = page_has_more(page, filters.limit)
        self.filters = filters
        self.error = None
        self.loaded = True


async def add_uploaded_document(
    cache: ResourceCache, client: ApiClient, key: str, filename: str, content: bytes
) -> dict[str, Any]:
    """Upload a file and prepend it to the cached list under ``key``."""
    upload = await upload_document(client, filename, content)
    doc = optimistic_document(upload, filename)
    await cache.mutate(key, lambda docs: [doc, *(docs or [])])
    return upload


async def remove_document(
    cache: ResourceCache, client: ApiClient, key: str, document_id: str
) -> None:
    """Remove a document optimistically, restoring the cached list on failure."""
    entry = cache.peek(key)
    previous = entry.value if entry is not None and entry.has_value else None
    await cache.mutate(
        key, lambda docs: [d for d in docs or [] if d.get("id") != document_id]
    )
    try:
        await delete_document(client, document_id)
    except ApiError:
        logger.warning("Delete of %s failed; restoring list", document_id)
        if previous is None:
            cache.invalidate(key)
        else:
            await cache.mutate(key, previous)
        raise
