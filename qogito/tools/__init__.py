"""Tools package for Qogito."""

from qogito.tools.registry import (
    ACTIVE_TOOL_NAMES,
    LIST_TOOLS_NAME,
    PASSIVE_TOOL_NAMES,
    RUN_COMMAND_NAME,
    AgentMode,
    Tool,
    ToolRegistry,
    build_default_registry,
)
from qogito.tools.read import (
    GetFileInfoTool,
    ListDirectoryTool,
    ReadFileLinesTool,
    ReadFileTool,
)
from qogito.tools.search import SearchFilesTool
from qogito.tools.shell import RunCommandTool
from qogito.tools.write import (
    CreateDirectoryTool,
    DeleteFileTool,
    MoveFileTool,
    StrReplaceTool,
    WriteFileTool,
)

__all__ = [
    "ACTIVE_TOOL_NAMES",
    "LIST_TOOLS_NAME",
    "PASSIVE_TOOL_NAMES",
    "RUN_COMMAND_NAME",
    "AgentMode",
    "Tool",
    "ToolRegistry",
    "build_default_registry",
    "ListDirectoryTool",
    "ReadFileTool",
    "ReadFileLinesTool",
    "SearchFilesTool",
    "GetFileInfoTool",
    "CreateDirectoryTool",
    "MoveFileTool",
    "DeleteFileTool",
    "StrReplaceTool",
    "WriteFileTool",
    "RunCommandTool",
]
