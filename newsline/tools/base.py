"""
Base classes for the tools the voice AI can call.

A tool declares a provider-agnostic ToolDefinition (name, description,
parameters, whether it acts on the caller's own account) and implements
``execute``. Results are plain dicts; the dispatcher serializes them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from newsline.config.constants import LOGGER_NAME
from newsline.models.call_session import CallerIdentity
from newsline.services.x_api import XApiClient

logger = logging.getLogger(LOGGER_NAME)


class ToolValidationError(ValueError):
    """Raised when a tool receives arguments it cannot use."""


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str
    required: bool = False
    enum: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "description": self.description
        }
        if self.enum:
            result["enum"] = self.enum
        return result


@dataclass
class ToolDefinition:
    """Metadata needed to expose a tool to the voice AI."""
    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)
    requires_auth: bool = False  # Acts on the caller's linked account

    def to_realtime_schema(self) -> Dict[str, Any]:
        """
        Convert to the realtime session tool format.

        Realtime sessions take name/description at the top level:
        {"type": "function", "name": ..., "description": ..., "parameters": {...}}
        """
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {
                    p.name: p.to_dict()
                    for p in self.parameters
                },
                "required": [p.name for p in self.parameters if p.required]
            }
        }


@dataclass
class ToolContext:
    """Everything a tool may use while executing for one call."""
    call_id: str
    x_api: XApiClient
    caller_identity: Optional[CallerIdentity] = None


class Tool(ABC):
    """
    Abstract base class for all tools.

    Subclasses provide ``definition`` and ``execute``. Provider errors may
    propagate out of ``execute``; the dispatcher converts them.
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return tool definition with metadata."""

    @abstractmethod
    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        """
        Execute the tool.

        Args:
            arguments: Parsed arguments from the voice AI (possibly empty)
            context: Call-scoped execution context

        Returns:
            Result dictionary with a ``success`` flag
        """

    def validate_arguments(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Check required and enumerated arguments.

        Returns:
            The arguments, with string values stripped

        Raises:
            ToolValidationError: If an argument is missing or invalid
        """
        cleaned = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in arguments.items()
        }
        for param in self.definition.parameters:
            value = cleaned.get(param.name)
            if param.required and (value is None or value == ""):
                raise ToolValidationError(f"Missing required argument: {param.name}")
            if param.enum and value not in (None, "") and value not in param.enum:
                raise ToolValidationError(
                    f"Invalid value for {param.name}. "
                    f"Must be one of: {', '.join(param.enum)}"
                )
        return cleaned


def tool_success(**payload: Any) -> Dict[str, Any]:
    return {"success": True, **payload}


def tool_failure(error: str, message: Optional[str] = None, **payload: Any) -> Dict[str, Any]:
    """Structured failure the voice AI narrates to the caller."""
    result: Dict[str, Any] = {"success": False, "error": error}
    if message:
        result["message"] = message
    result.update(payload)
    return result
