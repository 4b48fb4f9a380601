"""Tool registry and base tool class."""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from qogito.config import Config, get_config
from qogito.exceptions import InvalidArgumentError, UnknownToolError
from qogito.llm.types import ToolDefinition
from qogito.logging import get_logger

log = get_logger(__name__)

AgentMode = Literal["passive", "active"]

LIST_TOOLS_NAME = "list_tools"
RUN_COMMAND_NAME = "run_command"

PASSIVE_TOOL_NAMES: tuple[str, ...] = (
    LIST_TOOLS_NAME,
    "list_directory",
    "read_file",
    "read_file_lines",
    "search_files",
    "get_file_info",
)
ACTIVE_TOOL_NAMES: tuple[str, ...] = PASSIVE_TOOL_NAMES + (
    "create_directory",
    "move_file",
    "delete_file",
    "str_replace",
    "write_file",
    RUN_COMMAND_NAME,
)

# Answered by the agent itself, so it has a definition but no executor.
LIST_TOOLS_DEFINITION = ToolDefinition(
    name=LIST_TOOLS_NAME,
    description=(
        "List the names of all tools currently available to you. Always call "
        "this tool first before responding to any user request, to confirm you "
        "have the tools needed to fulfil it."
    ),
    parameters={"type": "object", "properties": {}, "required": []},
)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


class Tool(ABC):
    """Base class for all sandboxed tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    arguments_model: type[BaseModel]

    @abstractmethod
    async def execute(self, args: Any, workspace_root: Path) -> str:
        """Run the tool.

        Args:
            args: Parsed instance of ``arguments_model``
            workspace_root: Resolved workspace root every path must stay in

        Returns:
            Text result handed back to the model
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Get the tool definition for the LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def parse_arguments(self, raw: str | dict[str, Any] | None) -> BaseModel:
        """Parse the model-provided JSON arguments into this tool's record.

        Raises:
            InvalidArgumentError if the JSON is malformed or a field is invalid
        """
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            data: Any = {}
        elif isinstance(raw, str):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                raise InvalidArgumentError(self.name, f"arguments are not valid JSON: {e}") from e
        else:
            data = raw

        if not isinstance(data, dict):
            raise InvalidArgumentError(self.name, "arguments must be a JSON object")

        try:
            return self.arguments_model.model_validate(data)
        except ValidationError as e:
            raise InvalidArgumentError(self.name, _format_validation_error(e)) from e


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            UnknownToolError if not found
        """
        if name not in self._tools:
            raise UnknownToolError(name)
        return self._tools[name]

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools)

    def get_definition(self, name: str) -> ToolDefinition:
        if name == LIST_TOOLS_NAME:
            return LIST_TOOLS_DEFINITION
        return self.get(name).get_definition()

    def resolve_active_tools(self, mode: AgentMode, allow_run_command: bool) -> list[ToolDefinition]:
        """Tool definitions offered in a conversation mode.

        Passive mode is read-only; active mode adds mutation tools and, when
        allowed, shell execution.
        """
        if mode == "active":
            names = [
                name
                for name in ACTIVE_TOOL_NAMES
                if allow_run_command or name != RUN_COMMAND_NAME
            ]
        else:
            names = list(PASSIVE_TOOL_NAMES)
        return [self.get_definition(name) for name in names]

    async def execute(
        self,
        name: str,
        arguments: str | dict[str, Any] | None,
        workspace_root: Path | str,
    ) -> str:
        """Execute a tool by name inside the workspace root.

        Args:
            name: Tool name
            arguments: JSON-encoded (or already decoded) argument object
            workspace_root: Directory the tool is confined to

        Returns:
            Text result

        Raises:
            UnknownToolError, InvalidArgumentError, AccessDeniedError and the
            tool-specific errors; OSError from the filesystem propagates too
        """
        tool = self.get(name)
        args = tool.parse_arguments(arguments)
        root = Path(workspace_root).resolve()

        log.info("Executing tool", tool=name, root=str(root))
        result = await tool.execute(args, root)
        log.debug("Tool executed", tool=name, chars=len(result))
        return result


def build_default_registry(config: Config | None = None) -> ToolRegistry:
    """Create a registry with every filesystem and shell tool registered."""
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

    cfg = config or get_config()
    registry = ToolRegistry()
    for tool in (
        ListDirectoryTool(),
        ReadFileTool(max_chars=cfg.tools.max_read_chars),
        ReadFileLinesTool(),
        SearchFilesTool(
            max_results=cfg.tools.max_search_results,
            skip_dirs=cfg.tools.skip_dirs,
        ),
        GetFileInfoTool(),
        CreateDirectoryTool(),
        MoveFileTool(),
        DeleteFileTool(),
        StrReplaceTool(),
        WriteFileTool(),
        RunCommandTool(
            timeout=cfg.tools.shell.timeout,
            max_output_bytes=cfg.tools.shell.max_output_bytes,
        ),
    ):
        registry.register(tool)
    return registry
