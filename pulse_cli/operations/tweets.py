"""Tweet tracking for grouped search terms."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from pulse_cli.events.bus import Event
from pulse_cli.exceptions import OperationError
from pulse_cli.operations.base import Operation

logger = logging.getLogger(__name__)

TWEETS = "tweets"
TWITTER_BASE_URL = "https://api.twitter.com/2"
SEARCH_PATH = "/tweets/search/recent"
MAX_TWEETS_TO_SEND = 100
# Page size accepted by recent search
MAX_RESULTS = 100


class TweetsOperation(Operation):
    """Polls recent tweets for groups of search terms and emits a ``tweets`` event.

    Each group's terms are OR-ed into one recent-search query. Only tweets
    newer than the previous poll are fetched. Per group, the most favourited
    tweets seen so far are kept, up to ``max_tweets``.

    The payload carries one entry per group with the newly fetched
    ``tweets`` and the current ``popular`` list.

    Example:
        operation = TweetsOperation("bearer", {"python": ["python", "pypi"]})
        event = await operation.execute()
        for group in event.payload["groups"]:
            print(group["group_name"], len(group["tweets"]))
    """

    name = "track-tweets"

    def __init__(
        self,
        bearer_token: str,
        groups: Mapping[str, Sequence[str]],
        max_tweets: int = MAX_TWEETS_TO_SEND,
        language: str = "en",
        base_url: str = TWITTER_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        super().__init__({"groups": {name: list(terms) for name, terms in groups.items()}})
        if not bearer_token:
            raise ValueError("Twitter bearer token is required")
        if not groups:
            raise ValueError("TweetsOperation needs at least one term group")
        for group_name, terms in groups.items():
            if not terms:
                raise ValueError(f"Term group {group_name} has no terms")
        if max_tweets <= 0:
            raise ValueError(f"max_tweets must be positive, got {max_tweets}")

        self._bearer_token = bearer_token
        self._groups = {name: list(terms) for name, terms in groups.items()}
        self._max_tweets = max_tweets
        self._language = language
        self._base_url = base_url
        self._timeout = timeout
        self._since_ids: Dict[str, str] = {}
        self._popular: Dict[str, List[Dict[str, Any]]] = {}

    def query(self, group_name: str) -> str:
        """Recent-search query for one group."""
        terms = [f'"{term}"' if " " in term else term for term in self._groups[group_name]]
        query = f"({' OR '.join(terms)}) -is:retweet"
        if self._language:
            query += f" lang:{self._language}"
        return query

    def popular(self, group_name: str) -> List[Dict[str, Any]]:
        """Most favourited tweets seen for a group, most favourited first."""
        return list(self._popular.get(group_name, []))

    async def execute(self) -> Event:
        headers = {"Authorization": f"Bearer {self._bearer_token}"}
        async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, headers=headers) as client:
            groups = [await self._track(client, group_name) for group_name in self._groups]

        return self.event(TWEETS, {"groups": groups})

    async def _track(self, client: httpx.AsyncClient, group_name: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "query": self.query(group_name),
            "max_results": MAX_RESULTS,
            "tweet.fields": "created_at,lang,public_metrics,geo",
            "expansions": "author_id",
            "user.fields": "username",
        }
        since_id = self._since_ids.get(group_name)
        if since_id:
            params["since_id"] = since_id

        try:
            response = await client.get(SEARCH_PATH, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise OperationError(
                f"Twitter API error: {e.response.status_code}",
                operation=self.name,
                details={"group": group_name},
            ) from e
        except httpx.HTTPError as e:
            raise OperationError(f"Twitter request failed: {e}", operation=self.name) from e
        except ValueError as e:
            raise OperationError(f"Invalid Twitter response: {e}", operation=self.name) from e

        users = {
            user["id"]: user.get("username")
            for user in data.get("includes", {}).get("users", [])
            if "id" in user
        }
        tweets = [self._tweet(group_name, raw, users) for raw in data.get("data", []) or []]

        newest_id = data.get("meta", {}).get("newest_id")
        if newest_id:
            self._since_ids[group_name] = newest_id

        self._keep_popular(group_name, tweets)
        logger.debug(f"Fetched {len(tweets)} tweets for {group_name}")
        return {
            "group_name": group_name,
            "terms": list(self._groups[group_name]),
            "tweets": tweets,
            "popular": self.popular(group_name),
        }

    def _keep_popular(self, group_name: str, tweets: List[Dict[str, Any]]) -> None:
        popular = self._popular.setdefault(group_name, [])
        popular.extend(tweets)
        popular.sort(key=lambda tweet: tweet["favorite_count"], reverse=True)
        if len(popular) > self._max_tweets:
            logger.info(
                f"Maximum popular tweets exceeded for {group_name}, dropping {len(popular) - self._max_tweets}"
            )
            del popular[self._max_tweets:]

    @staticmethod
    def _tweet(group_name: str, raw: Dict[str, Any], users: Mapping[str, Optional[str]]) -> Dict[str, Any]:
        metrics = raw.get("public_metrics", {})
        latitude = longitude = None
        point = (raw.get("geo") or {}).get("coordinates") or {}
        if point.get("type") == "Point" and len(point.get("coordinates", [])) == 2:
            # GeoJSON order
            longitude, latitude = point["coordinates"]
        return {
            "twitter_tweet_id": str(raw.get("id", "")),
            "group_name": group_name,
            "latitude": latitude,
            "longitude": longitude,
            "favorite_count": int(metrics.get("like_count", 0)),
            "retweet_count": int(metrics.get("retweet_count", 0)),
            "username": users.get(raw.get("author_id", "")),
            "lang": raw.get("lang"),
            "text": raw.get("text", ""),
            "tweeted_at": raw.get("created_at", ""),
        }
