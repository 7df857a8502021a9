"""
Tool package for the domain specialist worker.

``build_finance_toolbox`` returns a fresh ToolManager/ToolExecutor pair with
every finance tool registered. Each worker instance owns its own pair instead
of sharing module-level globals.
"""

from typing import Tuple

from .core import Tool, ToolManager, ToolExecutor
from .handlers import register_finance_tools


def build_finance_toolbox() -> Tuple[ToolManager, ToolExecutor]:
    tool_manager = ToolManager()
    register_finance_tools(tool_manager)
    return tool_manager, ToolExecutor(tool_manager)


__all__ = [
    'Tool',
    'ToolManager',
    'ToolExecutor',
    'build_finance_toolbox',
]
