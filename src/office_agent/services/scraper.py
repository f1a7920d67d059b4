"""Web page scraping using httpx and BeautifulSoup."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict
from typing import Any

import httpx
from bs4 import BeautifulSoup

from office_agent.core.config import ScraperSettings
from office_agent.core.datetime_utils import utc_now_iso
from office_agent.core.interfaces import Row, StoreGateway
from office_agent.core.models import BulkOutcome

LOGGER = logging.getLogger(__name__)

SCRAPE_TABLE = "scrape_jobs"


class ScrapeError(RuntimeError):
    """Raised when a page cannot be fetched."""


def extract_selectors(html: str, selectors: Mapping[str, str]) -> dict[str, list[str]]:
    """Return the trimmed text of every element matching each named selector."""
    soup = BeautifulSoup(html, "html.parser")
    return {
        key: [element.get_text().strip() for element in soup.select(selector)]
        for key, selector in selectors.items()
    }


def extract_page(html: str) -> dict[str, str]:
    """Return the raw HTML and the visible body text of a page."""
    soup = BeautifulSoup(html, "html.parser")
    root = soup.body or soup
    return {"html": str(soup), "text": root.get_text().strip()}


class WebScraper:
    """Fetch pages and extract text content from them."""

    def __init__(
        self,
        settings: ScraperSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def fetch(self, url: str) -> str:
        """Download ``url`` with a browser-like user agent."""
        headers = {"User-Agent": self._settings.user_agent}
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ScrapeError(f"Failed to fetch {url}: {exc}") from exc
        return response.text

    async def scrape(
        self, url: str, selectors: Mapping[str, str] | None = None
    ) -> dict[str, Any]:
        """Scrape ``url`` into selector groups, or full text and HTML."""
        html = await self.fetch(url)
        if selectors:
            result: dict[str, Any] = dict(extract_selectors(html, selectors))
        else:
            result = dict(extract_page(html))
        LOGGER.info("Scraped %s (%d keys)", url, len(result))
        return result

    async def scrape_many(
        self, configs: Iterable[Mapping[str, Any]]
    ) -> list[BulkOutcome]:
        """Scrape several pages concurrently, reporting failures per page."""
        configs = list(configs)
        results = await asyncio.gather(
            *(self.scrape(config["url"], config.get("selectors")) for config in configs),
            return_exceptions=True,
        )
        outcomes: list[BulkOutcome] = []
        for config, result in zip(configs, results):
            if isinstance(result, Exception):
                LOGGER.warning("Scrape of %s failed: %s", config["url"], result)
                outcomes.append(
                    BulkOutcome(target=config["url"], success=False, error=str(result))
                )
            else:
                outcomes.append(
                    BulkOutcome(target=config["url"], success=True, detail=result)
                )
        return outcomes


class ScrapeJobService:
    """Run multi-page scrapes and record them as scrape jobs."""

    def __init__(self, scraper: WebScraper, stores: StoreGateway) -> None:
        self._scraper = scraper
        self._stores = stores

    async def scrape_multiple(
        self,
        user_id: str,
        urls: Sequence[str],
        selectors: Mapping[str, str] | None = None,
    ) -> tuple[Row, list[BulkOutcome]]:
        """Scrape every URL with the same selectors; returns the job and outcomes."""
        if not urls:
            raise ScrapeError("urls must contain at least one URL")
        store = self._stores.for_user(user_id)
        job = await store.insert(
            SCRAPE_TABLE,
            {"url": ", ".join(urls), "selectors": selectors, "status": "running"},
        )
        try:
            outcomes = await self._scraper.scrape_many(
                {"url": url, "selectors": selectors} for url in urls
            )
        except Exception as exc:
            LOGGER.error("Scrape job %s failed: %s", job["id"], exc)
            await store.update(
                SCRAPE_TABLE,
                {"id": job["id"]},
                {"status": "failed", "error_message": str(exc), "completed_at": utc_now_iso()},
            )
            raise
        updated = await store.update(
            SCRAPE_TABLE,
            {"id": job["id"]},
            {
                "status": "completed",
                "result_data": [asdict(outcome) for outcome in outcomes],
                "completed_at": utc_now_iso(),
            },
        )
        return updated or job, outcomes


__all__ = [
    "SCRAPE_TABLE",
    "ScrapeError",
    "ScrapeJobService",
    "WebScraper",
    "extract_page",
    "extract_selectors",
]
