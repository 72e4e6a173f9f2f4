"""Account tools acting on the caller's own linked X account.

Each of these declares ``requires_auth``; the dispatcher never runs them for an
anonymous caller. Side effects (DM, post) are attempted once and never retried.
"""

import logging
from typing import Any, Dict

from newsline.config.constants import LOGGER_NAME
from newsline.tools.base import (
    Tool,
    ToolContext,
    ToolDefinition,
    ToolParameter,
    tool_failure,
    tool_success,
)
from newsline.tools.news import first_error, normalize_username

logger = logging.getLogger(LOGGER_NAME)

MAX_POST_LENGTH = 280
MAX_DM_LENGTH = 10000


class GetMyFollowingTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_my_following",
            description=(
                "Get the list of X accounts that the caller follows. Use when they ask "
                "'who do I follow', 'my following list', 'accounts I follow', etc. "
                "Requires the caller to be authenticated with their X account."
            ),
            requires_auth=True,
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        identity = context.caller_identity
        response = await context.x_api.following(
            identity.platform_user_id, access_token=identity.access_token
        )
        error = first_error(response)
        if error:
            return tool_failure(error, following=[])

        following = [
            {"name": user.get("name", ""), "username": user.get("username", "")}
            for user in response.get("data") or []
        ]
        return tool_success(count=len(following), following=following)


class SendDirectMessageTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="send_dm",
            description=(
                "Send a direct message on X on behalf of the caller. Use when they say "
                "'send a DM to...', 'message [person]', 'DM @username', etc. Requires the "
                "caller to be authenticated with their X account."
            ),
            parameters=[
                ToolParameter(
                    name="recipient_username",
                    type="string",
                    description="The @username of the person to DM (without the @ symbol)",
                    required=True,
                ),
                ToolParameter(
                    name="message",
                    type="string",
                    description="The message content to send",
                    required=True,
                ),
            ],
            requires_auth=True,
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        identity = context.caller_identity
        recipient = normalize_username(arguments["recipient_username"])
        message = arguments["message"]
        if recipient is None:
            return tool_failure(f"Invalid X username: {arguments['recipient_username']!r}")
        if len(message) > MAX_DM_LENGTH:
            return tool_failure(
                "message_too_long",
                message=f"Direct messages are limited to {MAX_DM_LENGTH} characters.",
            )

        lookup = await context.x_api.user_by_username(
            recipient, access_token=identity.access_token
        )
        error = first_error(lookup)
        if error or not lookup.get("data"):
            return tool_failure(error or f"User @{recipient} not found")

        response = await context.x_api.send_direct_message(
            lookup["data"]["id"], message, access_token=identity.access_token
        )
        error = first_error(response)
        if error:
            return tool_failure(error)

        logger.info(f"[{context.call_id}] DM sent to @{recipient}")
        return tool_success(recipient=recipient, message=message)


class PostTweetTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="post_tweet",
            description=(
                "Post a tweet on X on behalf of the caller. Use when they say 'post a "
                "tweet', 'tweet this', 'send a tweet saying', etc. Requires the caller to "
                "be authenticated with their X account."
            ),
            parameters=[
                ToolParameter(
                    name="text",
                    type="string",
                    description=f"The tweet content (maximum {MAX_POST_LENGTH} characters)",
                    required=True,
                ),
            ],
            requires_auth=True,
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        text = arguments["text"]
        if len(text) > MAX_POST_LENGTH:
            return tool_failure(
                "post_too_long",
                message=(
                    f"The post is {len(text)} characters; posts are limited to "
                    f"{MAX_POST_LENGTH}. Ask the caller to shorten it."
                ),
            )

        response = await context.x_api.create_post(
            text, access_token=context.caller_identity.access_token
        )
        error = first_error(response)
        if error:
            return tool_failure(error)

        post_id = (response.get("data") or {}).get("id")
        logger.info(f"[{context.call_id}] Post published: {post_id}")
        return tool_success(post_id=post_id, text=text)
