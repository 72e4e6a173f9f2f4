"""
Tool dispatcher - maps a tool-call name to its tool and runs it for one call.

The dispatcher is the only component that knows tool providers exist. Whatever
happens inside a tool (unknown name, missing authorization, bad arguments,
provider error, timeout) the caller gets back a JSON string, so the voice AI
always receives a function output it can narrate.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from newsline.config.constants import DEFAULT_TOOL_TIMEOUT, LOGGER_NAME
from newsline.models.call_session import CallerIdentity
from newsline.services.x_api import XApiClient, XApiError
from newsline.tools.account import GetMyFollowingTool, PostTweetTool, SendDirectMessageTool
from newsline.tools.base import Tool, ToolContext, ToolValidationError, tool_failure
from newsline.tools.news import GetTrendingNewsTool, GetUserPostsTool, SearchNewsTopicTool

logger = logging.getLogger(LOGGER_NAME)

RESULT_PREVIEW_LENGTH = 200

AUTH_REQUIRED_MESSAGE = (
    "This feature needs the caller's X account. Ask them to connect their X account "
    "on the website using this phone number, then call back."
)


class ToolDispatcher:
    """Registry of available tools plus the dispatch entry point."""

    def __init__(self, x_api: XApiClient, tool_timeout: float = DEFAULT_TOOL_TIMEOUT):
        self.x_api = x_api
        self.tool_timeout = tool_timeout
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        name = tool.definition.name
        if name in self._tools:
            logger.warning(f"Tool {name} already registered, overwriting")
        self._tools[name] = tool
        logger.debug(f"Registered tool: {name} (requires_auth={tool.definition.requires_auth})")

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def realtime_schemas(self) -> List[Dict[str, Any]]:
        """All tool schemas in the realtime session format."""
        return [tool.definition.to_realtime_schema() for tool in self._tools.values()]

    async def _run(
        self,
        call_id: str,
        tool: Tool,
        arguments: Dict[str, Any],
        caller_identity: Optional[CallerIdentity],
    ) -> Dict[str, Any]:
        name = tool.definition.name

        if tool.definition.requires_auth and caller_identity is None:
            logger.info(f"[{call_id}] Tool {name} requires a linked account; caller is anonymous")
            return tool_failure("authentication_required", message=AUTH_REQUIRED_MESSAGE)

        try:
            validated = tool.validate_arguments(arguments)
        except ToolValidationError as e:
            logger.warning(f"[{call_id}] Invalid arguments for {name}: {e}")
            return tool_failure(str(e))

        context = ToolContext(call_id=call_id, x_api=self.x_api, caller_identity=caller_identity)
        try:
            return await asyncio.wait_for(tool.execute(validated, context), timeout=self.tool_timeout)
        except asyncio.TimeoutError:
            logger.error(f"[{call_id}] Tool {name} timed out after {self.tool_timeout}s")
            return tool_failure(f"Tool timed out after {self.tool_timeout:g} seconds")
        except XApiError as e:
            logger.error(f"[{call_id}] Tool {name} provider error: {e}")
            return tool_failure(f"Tool execution failed: {e}")
        except Exception as e:
            logger.error(f"[{call_id}] Tool {name} failed: {e}", exc_info=True)
            return tool_failure(f"Tool execution failed: {e}")

    async def dispatch(
        self,
        call_id: str,
        tool_name: str,
        arguments: Dict[str, Any],
        caller_identity: Optional[CallerIdentity] = None,
    ) -> str:
        """
        Execute one tool call.

        Args:
            call_id: Call the tool runs for (log correlation)
            tool_name: Name requested by the voice AI
            arguments: Parsed arguments (empty when they could not be parsed)
            caller_identity: Authorization context, None for anonymous callers

        Returns:
            str: JSON result with a ``success`` flag
        """
        logger.info(f"[{call_id}] Executing tool: {tool_name}")
        logger.debug(f"[{call_id}]    Arguments: {json.dumps(arguments)}")

        tool = self._tools.get(tool_name)
        if tool is None:
            logger.warning(f"[{call_id}] Unknown tool requested: {tool_name}")
            result = tool_failure("unknown tool", message=f"Unknown tool: {tool_name}")
        else:
            result = await self._run(call_id, tool, arguments, caller_identity)

        text = json.dumps(result)
        status = "completed" if result.get("success") else "failed"
        preview = text if len(text) <= RESULT_PREVIEW_LENGTH else text[:RESULT_PREVIEW_LENGTH] + "..."
        logger.info(f"[{call_id}] Tool {status}: {tool_name}")
        logger.debug(f"[{call_id}]    Result preview: {preview}")
        return text


def create_dispatcher(x_api: XApiClient, tool_timeout: float = DEFAULT_TOOL_TIMEOUT) -> ToolDispatcher:
    """Dispatcher with every news and account tool registered."""
    dispatcher = ToolDispatcher(x_api, tool_timeout=tool_timeout)
    for tool in (
        SearchNewsTopicTool(),
        GetTrendingNewsTool(),
        GetUserPostsTool(),
        GetMyFollowingTool(),
        SendDirectMessageTool(),
        PostTweetTool(),
    ):
        dispatcher.register(tool)
    return dispatcher
