# llm_cloud/tools/core.py
"""
core.py – Core data structures for tool management and execution.
-----------------------------------------------------------------
This module provides the building blocks that let a worker expose callable
tools to the completion service:
- Tool: a single tool the LLM can call.
- ToolManager: registration and retrieval of tool definitions.
- ToolExecutor: execution of tool calls requested by the LLM.

Design notes:
1. Single Responsibility: ToolManager handles registration and metadata,
   ToolExecutor handles execution and error handling.
2. Tool handlers are pure functions of their parsed arguments, so they can be
   unit tested without a model in the loop.
"""

import json
import logging
from typing import Any, Callable, Dict, List

from monitoring.metrics import TOOL_EXECUTION_TIME

logger = logging.getLogger(__name__)


class Tool:
    """Metadata wrapper around a callable tool.

    Args:
        name:        Unique, human-readable identifier.
        handler:     Function ``(args: dict) -> Any`` that performs the work.
        description: Short text shown to the LLM.
        parameters:  JSON schema describing *args* for the handler.
    """

    def __init__(self, name: str, handler: Callable[[Dict[str, Any]], Any], description: str,
                 parameters: Dict[str, Any]):
        self.name = name
        self.handler = handler
        self.description = description
        self.parameters = parameters


class ToolManager:
    """Manages tool registration and metadata retrieval."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Add or replace a tool in the registry, keyed by its name."""
        self._tools[tool.name] = tool

    def get_definitions(self) -> List[Dict[str, Any]]:
        """Return the function descriptions expected by the chat completions ``tools`` parameter."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in self._tools.values()
        ]

    def get_tool_names(self) -> List[str]:
        return list(self._tools)

    def get_tool(self, tool_name: str) -> Tool:
        """Retrieve a registered tool.

        Raises:
            KeyError: If no tool with the given name is registered. ToolExecutor handles this.
        """
        return self._tools[tool_name]


class ToolExecutor:
    """Executes tool calls requested by the LLM.

    The executor parses the JSON arguments, looks the tool up in the manager and
    invokes its handler. Errors never propagate: they are logged and returned as
    text so the model can recover in its next message.
    """

    def __init__(self, tool_manager: ToolManager) -> None:
        self.tool_manager = tool_manager

    def run_tool(self, tool_call: Any) -> str:
        """Execute one tool call.

        Args:
            tool_call (Any): Object with ``function.name`` and ``function.arguments`` (a JSON string),
                as produced by the OpenAI SDK.

        Returns:
            str: The handler's result serialized as text, or an error description.
        """
        tool_name = tool_call.function.name
        raw_arguments = tool_call.function.arguments or "{}"
        logger.info(f"[run_tool] Attempting to run tool '{tool_name}' with raw arguments: {raw_arguments}")

        try:
            tool = self.tool_manager.get_tool(tool_name)
        except KeyError:
            logger.error(f"[run_tool] Unknown tool requested: '{tool_name}'. Raw arguments: {raw_arguments}")
            return f"Unknown tool '{tool_name}'"

        try:
            args = json.loads(raw_arguments)
            with TOOL_EXECUTION_TIME.labels(tool_name=tool_name).time():
                result = tool.handler(args)
            logger.info(f"[run_tool] Successfully executed tool '{tool_name}'")
            return result if isinstance(result, str) else json.dumps(result)
        except json.JSONDecodeError as exc:
            logger.error(f"[run_tool] Failed to parse JSON arguments for tool '{tool_name}': {exc}")
            return f"Error: Malformed arguments provided for tool '{tool_name}'. Arguments must be a valid JSON string."
        except Exception as exc:
            logger.exception(f"[run_tool] Error executing tool '{tool_name}'")
            return f"Error executing tool '{tool_name}': {exc}"
