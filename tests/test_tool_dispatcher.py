import asyncio
import json
from unittest.mock import MagicMock

import pytest

from newsline.models.call_session import CallerIdentity
from newsline.services.x_api import XApiClient, XApiError
from newsline.tools.base import Tool, ToolDefinition
from newsline.tools.dispatcher import AUTH_REQUIRED_MESSAGE, create_dispatcher


class SlowTool(Tool):
    @property
    def definition(self):
        return ToolDefinition(name="slow_tool", description="Never finishes in time")

    async def execute(self, arguments, context):
        await asyncio.sleep(10)
        return {"success": True}


@pytest.fixture
def x_api():
    return MagicMock(spec=XApiClient)


@pytest.fixture
def dispatcher(x_api):
    return create_dispatcher(x_api, tool_timeout=5)


@pytest.fixture
def identity():
    return CallerIdentity(access_token="user-token", platform_user_id="42")


def test_registered_tools_and_schemas(dispatcher):
    assert sorted(dispatcher.tool_names) == [
        "get_my_following",
        "get_trending_news",
        "get_user_posts",
        "post_tweet",
        "search_news_topic",
        "send_dm",
    ]
    schemas = {schema["name"]: schema for schema in dispatcher.realtime_schemas()}
    search = schemas["search_news_topic"]
    assert search["type"] == "function"
    assert search["parameters"]["required"] == ["topic"]
    assert schemas["get_trending_news"]["parameters"]["properties"]["country"]["enum"] == [
        "AU", "CA", "UK", "US"
    ]
    assert schemas["get_my_following"]["parameters"]["properties"] == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tool_name,arguments",
    [
        ("get_my_following", {}),
        ("send_dm", {"recipient_username": "grace", "message": "hi"}),
        ("post_tweet", {"text": "hello"}),
    ],
)
async def test_account_tools_require_identity(dispatcher, x_api, tool_name, arguments):
    result = json.loads(await dispatcher.dispatch("call_1", tool_name, arguments, None))

    assert result == {
        "success": False,
        "error": "authentication_required",
        "message": AUTH_REQUIRED_MESSAGE,
    }
    # No provider call is made for an anonymous caller
    assert x_api.mock_calls == []


@pytest.mark.asyncio
async def test_authenticated_account_tool_runs(dispatcher, x_api, identity):
    x_api.create_post.return_value = {"data": {"id": "555"}}

    result = json.loads(await dispatcher.dispatch("call_1", "post_tweet", {"text": " hi "}, identity))

    assert result == {"success": True, "post_id": "555", "text": "hi"}
    x_api.create_post.assert_awaited_once_with("hi", access_token="user-token")


@pytest.mark.asyncio
async def test_unknown_tool(dispatcher):
    result = json.loads(await dispatcher.dispatch("call_1", "launch_rocket", {}))
    assert result == {"success": False, "error": "unknown tool", "message": "Unknown tool: launch_rocket"}


@pytest.mark.asyncio
async def test_missing_required_argument(dispatcher, x_api):
    result = json.loads(await dispatcher.dispatch("call_1", "search_news_topic", {}))
    assert result == {"success": False, "error": "Missing required argument: topic"}
    x_api.search_recent.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_enum_value(dispatcher, x_api):
    result = json.loads(await dispatcher.dispatch("call_1", "get_trending_news", {"country": "FR"}))
    assert result["success"] is False
    assert result["error"].startswith("Invalid value for country")
    x_api.trends.assert_not_called()


@pytest.mark.asyncio
async def test_provider_error_becomes_failure(dispatcher, x_api):
    x_api.search_recent.side_effect = XApiError("Request timeout: /2/tweets/search/recent")

    result = json.loads(await dispatcher.dispatch("call_1", "search_news_topic", {"topic": "ai"}))

    assert result == {
        "success": False,
        "error": "Tool execution failed: Request timeout: /2/tweets/search/recent",
    }


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failure(dispatcher, x_api):
    x_api.search_recent.side_effect = KeyError("data")
    result = json.loads(await dispatcher.dispatch("call_1", "search_news_topic", {"topic": "ai"}))
    assert result["success"] is False
    assert result["error"].startswith("Tool execution failed")


@pytest.mark.asyncio
async def test_tool_timeout(x_api):
    dispatcher = create_dispatcher(x_api, tool_timeout=0.05)
    dispatcher.register(SlowTool())

    result = json.loads(await dispatcher.dispatch("call_1", "slow_tool", {}))

    assert result == {"success": False, "error": "Tool timed out after 0.05 seconds"}
