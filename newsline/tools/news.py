"""News tools: topic search, trending topics and a user's latest posts.

These tools only read public data and run with the application token, so
anonymous callers may use them.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from newsline.config.constants import LOGGER_NAME
from newsline.services.x_api import WOEID_MAP, XApiError
from newsline.tools.base import (
    Tool,
    ToolContext,
    ToolDefinition,
    ToolParameter,
    tool_failure,
    tool_success,
)

logger = logging.getLogger(LOGGER_NAME)

TOP_TRENDS = 6
POSTS_PER_TREND = 5
TOPIC_POSTS = 10

USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_]{1,15}")


def first_error(response: Dict[str, Any]) -> Optional[str]:
    """Message of the first provider error embedded in a response body."""
    errors = response.get("errors") or []
    if errors:
        return errors[0].get("message") or errors[0].get("detail") or "Unknown provider error"
    return None


def normalize_username(raw: str) -> Optional[str]:
    """Handle without a leading @, or None unless it is a valid X username."""
    handle = raw.strip().lstrip("@")
    return handle if USERNAME_PATTERN.fullmatch(handle) else None


def index_users(response: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    users = (response.get("includes") or {}).get("users") or []
    return {user["id"]: user for user in users if "id" in user}


class SearchNewsTopicTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="search_news_topic",
            description=(
                "Search for recent news and posts about a specific topic on X/Twitter. "
                "Use when the user asks about a specific subject like 'AI', 'sports', "
                "'politics', etc."
            ),
            parameters=[
                ToolParameter(
                    name="topic",
                    type="string",
                    description=(
                        "The topic to search for (e.g., 'artificial intelligence', "
                        "'bitcoin', 'election')"
                    ),
                    required=True,
                ),
            ],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        topic = arguments["topic"]
        response = await context.x_api.search_recent(f"{topic} lang:en -is:retweet")

        error = first_error(response)
        if error:
            return tool_failure(error, posts=[])
        if not response.get("data"):
            return tool_failure(f'No recent posts found about "{topic}"', posts=[])

        users = index_users(response)
        posts = []
        for post in response["data"][:TOPIC_POSTS]:
            author = users.get(post.get("author_id", ""), {})
            metrics = post.get("public_metrics") or {}
            posts.append({
                "text": post.get("text", ""),
                "author": author.get("name", "Unknown"),
                "username": author.get("username", ""),
                "likes": metrics.get("like_count", 0),
                "retweets": metrics.get("retweet_count", 0),
            })

        return tool_success(topic=topic, post_count=len(posts), posts=posts)


class GetTrendingNewsTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_trending_news",
            description=(
                "Get the current trending topics and top posts from X/Twitter. Use when "
                "the user wants to hear what's trending or popular right now."
            ),
            parameters=[
                ToolParameter(
                    name="country",
                    type="string",
                    description="Country code for trends (default: 'US'). Options: US, UK, CA, AU",
                    enum=sorted(WOEID_MAP),
                ),
            ],
        )

    async def _trend_posts(self, context: ToolContext, trend: Dict[str, Any]) -> Dict[str, Any]:
        name = trend.get("trend_name", "")
        try:
            response = await context.x_api.search_recent(
                f"{name} lang:en -is:retweet", max_results=10
            )
        except XApiError as e:
            logger.warning(f"[{context.call_id}] Posts for trend '{name}' unavailable: {e}")
            response = {}

        users = index_users(response)
        posts = [
            {
                "text": post.get("text", ""),
                "author": users.get(post.get("author_id", ""), {}).get("name", "Unknown"),
                "likes": (post.get("public_metrics") or {}).get("like_count", 0),
            }
            for post in (response.get("data") or [])[:POSTS_PER_TREND]
        ]
        return {"trend_name": name, "tweet_count": trend.get("tweet_count"), "posts": posts}

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        country = arguments.get("country") or "US"
        response = await context.x_api.trends(WOEID_MAP.get(country, WOEID_MAP["US"]))

        error = first_error(response)
        if error:
            return tool_failure(error, trends=[])
        if not response.get("data"):
            return tool_failure(f"No trends found for {country}", trends=[])

        top_trends = sorted(
            response["data"], key=lambda t: t.get("tweet_count") or 0, reverse=True
        )[:TOP_TRENDS]
        trends: List[Dict[str, Any]] = await asyncio.gather(
            *(self._trend_posts(context, trend) for trend in top_trends)
        )
        return tool_success(country=country, trends=trends)


class GetUserPostsTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_user_posts",
            description=(
                "Get the latest posts from a specific X/Twitter user. Use when the user "
                "asks about what someone has been posting, tweeting, or saying on X. "
                "Examples: 'What has Elon Musk posted?', 'What's @elonmusk saying?'"
            ),
            parameters=[
                ToolParameter(
                    name="username",
                    type="string",
                    description=(
                        "The X/Twitter username (handle) of the person. Can include @ or "
                        "not. Examples: 'elonmusk', '@tim_cook', 'BillGates'"
                    ),
                    required=True,
                ),
            ],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        username = normalize_username(arguments["username"])
        if username is None:
            return tool_failure(f"Invalid X username: {arguments['username']!r}", posts=[])
        lookup = await context.x_api.user_by_username(username)

        error = first_error(lookup)
        if error or not lookup.get("data"):
            return tool_failure(error or f"User @{username} not found", posts=[])

        user = lookup["data"]
        timeline = await context.x_api.user_posts(user["id"])
        error = first_error(timeline)
        if error:
            return tool_failure(error, posts=[])

        posts = [
            {
                "text": post.get("text", ""),
                "created_at": post.get("created_at"),
                "likes": (post.get("public_metrics") or {}).get("like_count", 0),
                "retweets": (post.get("public_metrics") or {}).get("retweet_count", 0),
            }
            for post in timeline.get("data") or []
        ]
        if not posts:
            return tool_failure(f"@{username} has no recent posts", posts=[])

        return tool_success(
            name=user.get("name", username),
            username=user.get("username", username),
            post_count=len(posts),
            posts=posts,
        )
