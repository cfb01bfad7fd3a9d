from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ocr_estimate.core.schema import PageRecord

logger = logging.getLogger(__name__)

PageLoader = Callable[[str], Awaitable[list[PageRecord]]]


class PageTextCache:
    """Per-session cache of page records keyed by batch file id.

    Entries are never evicted while the session lives.  Concurrent requests
    for the same id share one in-flight fetch; a failed fetch is not cached,
    so the next request retries it.
    """

    def __init__(self, loader: PageLoader) -> None:
        self._loader = loader
        self._pages: dict[str, list[PageRecord]] = {}
        self._inflight: dict[str, asyncio.Future[list[PageRecord]]] = {}

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._pages

    def __len__(self) -> int:
        return len(self._pages)

    def peek(self, file_id: str) -> list[PageRecord] | None:
        pages = self._pages.get(file_id)
        return list(pages) if pages is not None else None

    async def get(self, file_id: str) -> list[PageRecord]:
        cached = self._pages.get(file_id)
        if cached is not None:
            return list(cached)

        pending = self._inflight.get(file_id)
        if pending is None:
            pending = asyncio.ensure_future(self._load(file_id))
            self._inflight[file_id] = pending
        # Shield so that one cancelled waiter does not abort the shared fetch.
        pages = await asyncio.shield(pending)
        return list(pages)

    async def _load(self, file_id: str) -> list[PageRecord]:
        try:
            pages = await self._loader(file_id)
        except Exception:
            logger.warning("Fetching pages for file %s failed", file_id)
            raise
        finally:
            self._inflight.pop(file_id, None)
        self._pages[file_id] = list(pages)
        return pages
