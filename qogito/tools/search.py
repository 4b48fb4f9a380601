"""Search tool for finding regex matches across workspace files."""

import asyncio
import os
import re
from pathlib import Path

from pydantic import BaseModel

from qogito.exceptions import InvalidArgumentError
from qogito.logging import get_logger
from qogito.tools.registry import Tool
from qogito.tools.sandbox import resolve_in_workspace

log = get_logger(__name__)

MAX_SEARCH_RESULTS = 50
DEFAULT_SKIP_DIRS = ("node_modules",)


class SearchFilesArgs(BaseModel):
    path: str
    pattern: str
    glob: str | None = None


def glob_to_regex(glob: str) -> re.Pattern[str]:
    """Translate a filename glob supporting only ``*`` and ``?`` into an anchored regex."""
    escaped = re.escape(glob).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$")


def walk_files(root: Path, skip_dirs: set[str]) -> list[Path]:
    """List regular files below root without following symlinks.

    Hidden entries and dependency caches are skipped.
    """
    files: list[Path] = []
    with os.scandir(root) as entries:
        ordered = sorted(entries, key=lambda entry: entry.name)
    for entry in ordered:
        if entry.name.startswith(".") or entry.name in skip_dirs:
            continue
        if entry.is_dir(follow_symlinks=False):
            files.extend(walk_files(Path(entry.path), skip_dirs))
        elif entry.is_file(follow_symlinks=False):
            files.append(Path(entry.path))
    return files


class SearchFilesTool(Tool):
    """Regex search over files below a directory."""

    name = "search_files"
    description = (
        "Search for a regex pattern across files in a directory. Returns "
        "matching lines as path:line:content."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the directory to search in.",
            },
            "pattern": {
                "type": "string",
                "description": "Regular expression pattern to search for.",
            },
            "glob": {
                "type": "string",
                "description": 'Optional filename glob to restrict which files are searched, e.g. "*.py".',
            },
        },
        "required": ["path", "pattern"],
    }
    arguments_model = SearchFilesArgs

    def __init__(
        self,
        max_results: int = MAX_SEARCH_RESULTS,
        skip_dirs: list[str] | tuple[str, ...] = DEFAULT_SKIP_DIRS,
    ):
        self.max_results = max_results
        self.skip_dirs = set(skip_dirs)

    async def execute(self, args: SearchFilesArgs, workspace_root: Path) -> str:
        resolved = resolve_in_workspace(args.path, workspace_root)
        try:
            pattern = re.compile(args.pattern)
        except re.error as e:
            raise InvalidArgumentError(self.name, f"invalid pattern: {e}") from e
        name_filter = glob_to_regex(args.glob) if args.glob else None

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._search(resolved, pattern, name_filter),
        )

    def _search(
        self,
        root: Path,
        pattern: re.Pattern[str],
        name_filter: re.Pattern[str] | None,
    ) -> str:
        results: list[str] = []
        for file_path in walk_files(root, self.skip_dirs):
            if name_filter is not None and not name_filter.match(file_path.name):
                continue
            try:
                data = file_path.read_bytes()
            except OSError as e:
                log.debug("Skipping unreadable file", path=str(file_path), error=str(e))
                continue
            if b"\0" in data:
                continue

            relative = file_path.relative_to(root).as_posix()
            text = data.decode("utf-8", errors="replace")
            for number, line in enumerate(text.split("\n"), start=1):
                if not pattern.search(line):
                    continue
                results.append(f"{relative}:{number}:{line.strip()}")
                if len(results) >= self.max_results:
                    results.append(f"(truncated at {self.max_results} matches)")
                    return "\n".join(results)

        return "\n".join(results) if results else "No matches found."
