"""
Tools the voice AI can call during a call.

Key components:
- base: ToolDefinition/ToolParameter metadata, the Tool base class and the
  structured success/failure helpers.
- news: Public news tools (topic search, trends, a user's posts).
- account: Tools acting on the caller's linked account (following, DM, post).
- dispatcher: ToolDispatcher, the single entry point used by the call bridge.

Usage examples:
```python
from newsline.services.x_api import XApiClient
from newsline.tools.dispatcher import create_dispatcher

dispatcher = create_dispatcher(XApiClient(bearer_token))
result_json = await dispatcher.dispatch(call_id, "get_trending_news", {"country": "US"}, None)
```
"""

from newsline.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter
from newsline.tools.dispatcher import ToolDispatcher, create_dispatcher

__all__ = [
    "Tool",
    "ToolContext",
    "ToolDefinition",
    "ToolParameter",
    "ToolDispatcher",
    "create_dispatcher",
]
