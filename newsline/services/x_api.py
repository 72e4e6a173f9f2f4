"""
HTTP client for the X (Twitter) v2 API used by the news and account tools.

Public lookups authenticate with the application bearer token; actions taken on
a caller's behalf authenticate with that caller's OAuth access token. Transport
failures, non-success statuses and unparsable bodies raise XApiError so the
tool layer can turn them into a structured failure.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from newsline.config.constants import DEFAULT_HTTP_TIMEOUT, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# WOEID mapping for trends
WOEID_MAP: Dict[str, int] = {
    "US": 23424977,
    "UK": 23424975,
    "CA": 23424775,
    "AU": 23424748,
}

# Recent search rejects an end_time closer than 10 seconds to now
SEARCH_END_OFFSET = timedelta(seconds=15)
SEARCH_WINDOW = timedelta(hours=24)


class XApiError(Exception):
    """Raised when the X API cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def search_window(now: Optional[datetime] = None) -> Dict[str, str]:
    """start_time/end_time parameters covering the last day."""
    now = now or datetime.now(timezone.utc)
    end_time = now - SEARCH_END_OFFSET
    start_time = now - SEARCH_WINDOW
    return {
        "start_time": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "end_time": end_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


class XApiClient:
    """Thin async wrapper over the X v2 endpoints the tools need."""

    def __init__(
        self,
        bearer_token: str,
        base_url: str = "https://api.x.com",
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bearer_token = bearer_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        token = access_token or self.bearer_token
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method, path, params=params, json=json, headers=headers
                )
        except httpx.TimeoutException as e:
            raise XApiError(f"Request timeout: {path}") from e
        except httpx.HTTPError as e:
            raise XApiError(f"Request failed: {e}") from e

        logger.debug(f"[X-API] {method} {path} -> {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise XApiError(
                f"Failed to parse response: {response.text[:200]}",
                status_code=response.status_code,
            ) from e

        if not response.is_success:
            detail = None
            if isinstance(data, dict):
                detail = data.get("detail") or data.get("title")
                if not detail and data.get("errors"):
                    detail = data["errors"][0].get("message")
            raise XApiError(
                detail or f"X API returned status {response.status_code}",
                status_code=response.status_code,
            )

        if not isinstance(data, dict):
            raise XApiError("Unexpected response shape", status_code=response.status_code)
        return data

    async def search_recent(self, query: str, max_results: int = 20) -> Dict[str, Any]:
        """Recent posts matching a query over the last 24 hours."""
        params = {
            "query": query,
            "max_results": str(max_results),
            "tweet.fields": "text,author_id,created_at,public_metrics",
            "expansions": "author_id",
            "user.fields": "name,username",
            "sort_order": "relevancy",
            **search_window(),
        }
        return await self._request("GET", "/2/tweets/search/recent", params=params)

    async def trends(self, woeid: int, max_trends: int = 10) -> Dict[str, Any]:
        return await self._request(
            "GET", f"/2/trends/by/woeid/{woeid}", params={"max_trends": str(max_trends)}
        )

    async def user_by_username(
        self, username: str, access_token: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/2/users/by/username/{username}",
            params={"user.fields": "name,username,description"},
            access_token=access_token,
        )

    async def user_posts(self, user_id: str, max_results: int = 10) -> Dict[str, Any]:
        params = {
            "max_results": str(max_results),
            "tweet.fields": "text,created_at,public_metrics",
            "exclude": "retweets,replies",
        }
        return await self._request("GET", f"/2/users/{user_id}/tweets", params=params)

    async def following(
        self, user_id: str, access_token: str, max_results: int = 100
    ) -> Dict[str, Any]:
        params = {"max_results": str(max_results), "user.fields": "name,username"}
        return await self._request(
            "GET", f"/2/users/{user_id}/following", params=params, access_token=access_token
        )

    async def send_direct_message(
        self, participant_id: str, text: str, access_token: str
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/2/dm_conversations/with/{participant_id}/messages",
            json={"text": text},
            access_token=access_token,
        )

    async def create_post(self, text: str, access_token: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/2/tweets", json={"text": text}, access_token=access_token
        )
