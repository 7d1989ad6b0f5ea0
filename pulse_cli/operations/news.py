"""New York Times "most popular" newscast."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from pulse_cli.events.bus import Event
from pulse_cli.exceptions import OperationError
from pulse_cli.operations.base import Operation

logger = logging.getLogger(__name__)

NEWSCAST = "newscast"
NYT_BASE_URL = "https://api.nytimes.com/svc/mostpopular/v2"
VALID_PERIODS = (1, 7, 30)


class NewsOperation(Operation):
    """Fetches most popular articles and emits a ``newscast`` event.

    Each configured listing (viewed, emailed, shared) becomes one section
    of the newscast.

    Example:
        operation = NewsOperation(api_key="...", viewed_period=1, emailed_period=7)
        event = await operation.execute()
        for section in event.payload["sections"]:
            print(section["section_title"], len(section["articles"]))
    """

    name = "fetch-news"

    def __init__(
        self,
        api_key: str,
        viewed_period: Optional[int] = 1,
        emailed_period: Optional[int] = None,
        shared_period: Optional[int] = None,
        shared_mediums: Sequence[str] = (),
        max_articles: int = 10,
        base_url: str = NYT_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        super().__init__({"viewed_period": viewed_period, "emailed_period": emailed_period})
        if not api_key:
            raise ValueError("New York Times API key is required")
        for period in (viewed_period, emailed_period, shared_period):
            if period is not None and period not in VALID_PERIODS:
                raise ValueError(f"Most popular period must be one of {VALID_PERIODS}, got {period}")

        self._api_key = api_key
        self._viewed_period = viewed_period
        self._emailed_period = emailed_period
        self._shared_period = shared_period
        self._shared_mediums = list(shared_mediums)
        self._max_articles = max_articles
        self._base_url = base_url
        self._timeout = timeout

    def listings(self) -> List[Tuple[str, str]]:
        """(section title, request path) for every configured listing."""
        listings = []
        if self._viewed_period:
            listings.append(("Most Viewed", f"/viewed/{self._viewed_period}.json"))
        if self._emailed_period:
            listings.append(("Most Emailed", f"/emailed/{self._emailed_period}.json"))
        if self._shared_period:
            if self._shared_mediums:
                mediums = ";".join(self._shared_mediums)
                listings.append(("Most Shared", f"/shared/{self._shared_period}/{mediums}.json"))
            else:
                listings.append(("Most Shared", f"/shared/{self._shared_period}.json"))
        return listings

    async def execute(self) -> Event:
        listings = self.listings()
        if not listings:
            raise OperationError("No news listings configured", operation=self.name)

        async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
            sections = [await self._fetch_section(client, title, path) for title, path in listings]

        return self.event(NEWSCAST, {"sections": sections})

    async def _fetch_section(self, client: httpx.AsyncClient, title: str, path: str) -> Dict[str, Any]:
        try:
            response = await client.get(path, params={"api-key": self._api_key})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise OperationError(
                f"New York Times API error: {e.response.status_code}",
                operation=self.name,
                details={"section": title},
            ) from e
        except httpx.HTTPError as e:
            raise OperationError(f"New York Times request failed: {e}", operation=self.name) from e
        except ValueError as e:
            raise OperationError(f"Invalid New York Times response: {e}", operation=self.name) from e

        articles = [self._article(result) for result in data.get("results", [])[: self._max_articles]]
        logger.debug(f"Fetched {len(articles)} articles for {title}")
        return {"section_title": title, "articles": articles}

    @staticmethod
    def _article(result: Dict[str, Any]) -> Dict[str, Any]:
        article = {
            "url": result.get("url", ""),
            "title": result.get("title", ""),
            "abstract": result.get("abstract", ""),
            "published_date": result.get("published_date", ""),
        }
        if "views" in result:
            article["metric"] = f"{result['views']} views"
        return article
