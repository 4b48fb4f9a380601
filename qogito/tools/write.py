"""Workspace mutation tools."""

from pathlib import Path

from pydantic import BaseModel, Field

from qogito.exceptions import NotUniqueError, TextNotFoundError
from qogito.logging import get_logger
from qogito.tools.registry import Tool
from qogito.tools.sandbox import read_text_exact, resolve_in_workspace, write_text_exact

log = get_logger(__name__)


class PathArgs(BaseModel):
    path: str


class MoveFileArgs(BaseModel):
    source: str
    destination: str


class StrReplaceArgs(BaseModel):
    path: str
    old_str: str = Field(min_length=1)
    new_str: str


class WriteFileArgs(BaseModel):
    path: str
    content: str


class CreateDirectoryTool(Tool):
    """Create a directory tree."""

    name = "create_directory"
    description = "Create a directory and any missing parent directories."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path of the directory to create.",
            },
        },
        "required": ["path"],
    }
    arguments_model = PathArgs

    async def execute(self, args: PathArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        resolved.mkdir(parents=True, exist_ok=True)
        return "Directory created."


class MoveFileTool(Tool):
    """Move or rename a file or directory."""

    name = "move_file"
    description = "Move or rename a file or directory."
    parameters = {
        "type": "object",
        "properties": {
            "source": {
                "type": "string",
                "description": "Path of the file or directory to move.",
            },
            "destination": {
                "type": "string",
                "description": "Destination path.",
            },
        },
        "required": ["source", "destination"],
    }
    arguments_model = MoveFileArgs

    async def execute(self, args: MoveFileArgs, workspace_root: Path) -> str:
        source = resolve_in_workspace(args.source, workspace_root)
        destination = resolve_in_workspace(args.destination, workspace_root)
        source.rename(destination)
        log.info("Moved path", source=str(source), destination=str(destination))
        return "Moved."


class DeleteFileTool(Tool):
    """Delete a single file."""

    name = "delete_file"
    description = "Delete a file."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to delete.",
            },
        },
        "required": ["path"],
    }
    arguments_model = PathArgs

    async def execute(self, args: PathArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        if resolved.is_dir():
            raise IsADirectoryError(f"Not a file: {args.path}")
        resolved.unlink()
        log.info("Deleted file", path=str(resolved))
        return "Deleted."


class StrReplaceTool(Tool):
    """Replace one exact, unique occurrence of a string."""

    name = "str_replace"
    description = (
        "Replace an exact string in a file with new content. old_str must match "
        "exactly once in the file, including whitespace and indentation."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to edit.",
            },
            "old_str": {
                "type": "string",
                "description": "The exact string to find and replace.",
            },
            "new_str": {
                "type": "string",
                "description": "The string to replace it with.",
            },
        },
        "required": ["path", "old_str", "new_str"],
    }
    arguments_model = StrReplaceArgs

    async def execute(self, args: StrReplaceArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        content = read_text_exact(resolved)
        occurrences = content.count(args.old_str)
        if occurrences == 0:
            raise TextNotFoundError("str_replace: old_str not found in file")
        if occurrences > 1:
            raise NotUniqueError(occurrences)
        write_text_exact(resolved, content.replace(args.old_str, args.new_str, 1))
        return "Edit applied."


class WriteFileTool(Tool):
    """Create or overwrite a file."""

    name = "write_file"
    description = "Create a new file or overwrite an existing file with new content."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to write.",
            },
            "content": {
                "type": "string",
                "description": "Text content to write to the file.",
            },
        },
        "required": ["path", "content"],
    }
    arguments_model = WriteFileArgs

    async def execute(self, args: WriteFileArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        write_text_exact(resolved, args.content)
        return "File written."
