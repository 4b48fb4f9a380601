"""Read-only filesystem tools."""

import os
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ValidationInfo, field_validator

from qogito.exceptions import OutOfRangeError
from qogito.tools.registry import Tool
from qogito.tools.sandbox import read_text_exact, resolve_in_workspace


MAX_READ_CHARS = 8000


class PathArgs(BaseModel):
    path: str


class ReadFileLinesArgs(BaseModel):
    path: str
    start_line: int
    num_lines: int

    @field_validator("start_line", "num_lines")
    @classmethod
    def _must_be_positive(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value


def split_lines(content: str) -> list[str]:
    """Split on newlines; a trailing newline does not start another line."""
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


class ListDirectoryTool(Tool):
    """List directory entries."""

    name = "list_directory"
    description = (
        "Get a detailed listing of all files and directories in a specified "
        "path. Directories are indicated with a trailing /."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the directory to list.",
            },
        },
        "required": ["path"],
    }
    arguments_model = PathArgs

    async def execute(self, args: PathArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        with os.scandir(resolved) as entries:
            names = sorted(
                f"{entry.name}/" if entry.is_dir() else entry.name
                for entry in entries
            )
        return "\n".join(names)


class ReadFileTool(Tool):
    """Read file contents, truncated at a character ceiling."""

    name = "read_file"
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to read.",
            },
        },
        "required": ["path"],
    }
    arguments_model = PathArgs

    def __init__(self, max_chars: int = MAX_READ_CHARS):
        self.max_chars = max_chars
        self.description = (
            "Read the contents of a file. Large files are truncated at "
            f"{max_chars} characters; use read_file_lines to read specific "
            "ranges of large files."
        )

    async def execute(self, args: PathArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        content = read_text_exact(resolved)
        if len(content) <= self.max_chars:
            return content
        return (
            content[: self.max_chars]
            + f"\n[truncated: showing first {self.max_chars} of {len(content)} characters;"
            " use read_file_lines for specific ranges]"
        )


class ReadFileLinesTool(Tool):
    """Read a 1-based range of lines."""

    name = "read_file_lines"
    description = "Read a range of lines from a file. Line numbers are 1-based."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to read.",
            },
            "start_line": {
                "type": "integer",
                "description": "Line number to start reading from (1-based).",
            },
            "num_lines": {
                "type": "integer",
                "description": "Number of lines to read.",
            },
        },
        "required": ["path", "start_line", "num_lines"],
    }
    arguments_model = ReadFileLinesArgs

    async def execute(self, args: ReadFileLinesArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        lines = split_lines(read_text_exact(resolved))
        start = args.start_line - 1
        selected = lines[start : start + args.num_lines]
        if not selected:
            raise OutOfRangeError(
                f"start_line {args.start_line} is beyond end of file ({len(lines)} lines)"
            )
        return "\n".join(selected)


class GetFileInfoTool(Tool):
    """Report type, size and modification time."""

    name = "get_file_info"
    description = "Get metadata for a file or directory: type, size, and last modified time."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file or directory.",
            },
        },
        "required": ["path"],
    }
    arguments_model = PathArgs

    async def execute(self, args: PathArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        stat = resolved.stat()
        kind = "directory" if resolved.is_dir() else "file"
        modified = datetime.fromtimestamp(stat.st_mtime, tz=UTC).isoformat()
        return f"type: {kind}\nsize: {stat.st_size} bytes\nmodified: {modified}"
