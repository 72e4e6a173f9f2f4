from unittest.mock import MagicMock

import pytest

from newsline.models.call_session import CallerIdentity
from newsline.services.x_api import XApiClient, XApiError
from newsline.tools.account import GetMyFollowingTool, PostTweetTool, SendDirectMessageTool
from newsline.tools.base import ToolContext
from newsline.tools.news import GetTrendingNewsTool, GetUserPostsTool, SearchNewsTopicTool


@pytest.fixture
def x_api():
    return MagicMock(spec=XApiClient)


@pytest.fixture
def context(x_api):
    return ToolContext(call_id="call_test", x_api=x_api)


@pytest.fixture
def authed_context(x_api):
    identity = CallerIdentity(access_token="user-token", platform_user_id="42", username="ada")
    return ToolContext(call_id="call_test", x_api=x_api, caller_identity=identity)


@pytest.mark.asyncio
async def test_search_news_topic_formats_posts(x_api, context):
    x_api.search_recent.return_value = {
        "data": [
            {
                "text": "New model released",
                "author_id": "1",
                "public_metrics": {"like_count": 10, "retweet_count": 2},
            },
            {"text": "Unknown author post", "author_id": "99"},
        ],
        "includes": {"users": [{"id": "1", "name": "Ada", "username": "ada"}]},
    }

    result = await SearchNewsTopicTool().execute({"topic": "ai"}, context)

    x_api.search_recent.assert_awaited_once_with("ai lang:en -is:retweet")
    assert result["success"] is True
    assert result["post_count"] == 2
    assert result["posts"][0] == {
        "text": "New model released",
        "author": "Ada",
        "username": "ada",
        "likes": 10,
        "retweets": 2,
    }
    assert result["posts"][1]["author"] == "Unknown"


@pytest.mark.asyncio
async def test_search_news_topic_no_results(x_api, context):
    x_api.search_recent.return_value = {"meta": {"result_count": 0}}
    result = await SearchNewsTopicTool().execute({"topic": "zzz"}, context)
    assert result == {"success": False, "error": 'No recent posts found about "zzz"', "posts": []}


@pytest.mark.asyncio
async def test_trending_news_ranks_and_tolerates_post_failures(x_api, context):
    x_api.trends.return_value = {
        "data": [
            {"trend_name": "#small", "tweet_count": 5},
            {"trend_name": "#big", "tweet_count": 5000},
        ]
    }

    async def search(query, max_results=20):
        if query.startswith("#small"):
            raise XApiError("rate limited", status_code=429)
        return {
            "data": [{"text": "Huge news", "author_id": "1"}],
            "includes": {"users": [{"id": "1", "name": "Ada"}]},
        }

    x_api.search_recent.side_effect = search

    result = await GetTrendingNewsTool().execute({"country": "UK"}, context)

    x_api.trends.assert_awaited_once_with(23424975)
    assert result["success"] is True
    assert result["country"] == "UK"
    assert [t["trend_name"] for t in result["trends"]] == ["#big", "#small"]
    assert result["trends"][0]["posts"] == [{"text": "Huge news", "author": "Ada", "likes": 0}]
    assert result["trends"][1]["posts"] == []


@pytest.mark.asyncio
async def test_trending_news_defaults_to_us(x_api, context):
    x_api.trends.return_value = {"data": []}
    result = await GetTrendingNewsTool().execute({}, context)
    x_api.trends.assert_awaited_once_with(23424977)
    assert result["success"] is False


@pytest.mark.asyncio
async def test_user_posts_strips_at_sign(x_api, context):
    x_api.user_by_username.return_value = {"data": {"id": "7", "name": "Tim", "username": "tim_cook"}}
    x_api.user_posts.return_value = {
        "data": [{"text": "Hello", "created_at": "2024-01-01T00:00:00Z"}]
    }

    result = await GetUserPostsTool().execute({"username": "@tim_cook"}, context)

    x_api.user_by_username.assert_awaited_once_with("tim_cook")
    x_api.user_posts.assert_awaited_once_with("7")
    assert result["success"] is True
    assert result["name"] == "Tim"
    assert result["posts"][0]["text"] == "Hello"


@pytest.mark.asyncio
async def test_user_posts_unknown_user(x_api, context):
    x_api.user_by_username.return_value = {"errors": [{"detail": "Could not find user"}]}
    result = await GetUserPostsTool().execute({"username": "nobody"}, context)
    assert result == {"success": False, "error": "Could not find user", "posts": []}
    x_api.user_posts.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("username", ["../2/tweets", "tim cook", "@", "a" * 16, "ada?x=1"])
async def test_user_posts_rejects_invalid_username(x_api, context, username):
    result = await GetUserPostsTool().execute({"username": username}, context)
    assert result["success"] is False
    assert result["posts"] == []
    x_api.user_by_username.assert_not_called()
    x_api.user_posts.assert_not_called()


@pytest.mark.asyncio
async def test_following_uses_caller_credentials(x_api, authed_context):
    x_api.following.return_value = {"data": [{"name": "Grace", "username": "grace"}]}

    result = await GetMyFollowingTool().execute({}, authed_context)

    x_api.following.assert_awaited_once_with("42", access_token="user-token")
    assert result == {
        "success": True,
        "count": 1,
        "following": [{"name": "Grace", "username": "grace"}],
    }


@pytest.mark.asyncio
async def test_send_dm_looks_up_recipient(x_api, authed_context):
    x_api.user_by_username.return_value = {"data": {"id": "7"}}
    x_api.send_direct_message.return_value = {"data": {"dm_event_id": "1"}}

    result = await SendDirectMessageTool().execute(
        {"recipient_username": "@grace", "message": "Lunch?"}, authed_context
    )

    x_api.user_by_username.assert_awaited_once_with("grace", access_token="user-token")
    x_api.send_direct_message.assert_awaited_once_with("7", "Lunch?", access_token="user-token")
    assert result == {"success": True, "recipient": "grace", "message": "Lunch?"}


@pytest.mark.asyncio
async def test_send_dm_rejects_invalid_recipient(x_api, authed_context):
    result = await SendDirectMessageTool().execute(
        {"recipient_username": "bad/handle", "message": "Lunch?"}, authed_context
    )
    assert result["success"] is False
    x_api.user_by_username.assert_not_called()
    x_api.send_direct_message.assert_not_called()


@pytest.mark.asyncio
async def test_post_tweet_rejects_long_text(x_api, authed_context):
    result = await PostTweetTool().execute({"text": "x" * 281}, authed_context)
    assert result["success"] is False
    assert result["error"] == "post_too_long"
    x_api.create_post.assert_not_called()


@pytest.mark.asyncio
async def test_post_tweet_publishes(x_api, authed_context):
    x_api.create_post.return_value = {"data": {"id": "555", "text": "Hello world"}}
    result = await PostTweetTool().execute({"text": "Hello world"}, authed_context)
    x_api.create_post.assert_awaited_once_with("Hello world", access_token="user-token")
    assert result == {"success": True, "post_id": "555", "text": "Hello world"}
