import os
from pathlib import Path

import pytest

from qogito.exceptions import InvalidArgumentError
from qogito.tools.search import SearchFilesTool, glob_to_regex
from qogito.tools.registry import ToolRegistry


def _registry(tool: SearchFilesTool | None = None) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(tool or SearchFilesTool())
    return registry


def _populate(root: Path) -> None:
    (root / "src").mkdir()
    (root / "src" / "app.py").write_text("import os\n\ndef main():\n    return os.getcwd()\n", encoding="utf-8")
    (root / "src" / "notes.md").write_text("main entry point\n", encoding="utf-8")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "dep.js").write_text("function main() {}\n", encoding="utf-8")
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("main = true\n", encoding="utf-8")
    (root / "image.bin").write_bytes(b"main\0binary")


def test_glob_to_regex_supports_star_and_question_mark():
    pattern = glob_to_regex("*.py")
    assert pattern.match("app.py")
    assert not pattern.match("app.pyc")
    assert glob_to_regex("?.txt").match("a.txt")
    assert not glob_to_regex("?.txt").match("ab.txt")
    assert glob_to_regex("a+b[1].txt").match("a+b[1].txt")


@pytest.mark.asyncio
async def test_search_reports_relative_path_line_and_stripped_text(tmp_path: Path):
    _populate(tmp_path)

    result = await _registry().execute("search_files", {"path": ".", "pattern": r"main"}, tmp_path)

    assert result.splitlines() == [
        "src/app.py:3:def main():",
        "src/notes.md:1:main entry point",
    ]


@pytest.mark.asyncio
async def test_search_glob_filters_by_basename(tmp_path: Path):
    _populate(tmp_path)

    result = await _registry().execute(
        "search_files", {"path": "src", "pattern": "main", "glob": "*.py"}, tmp_path
    )

    assert result == "app.py:3:def main():"


@pytest.mark.asyncio
async def test_search_without_matches(tmp_path: Path):
    _populate(tmp_path)

    result = await _registry().execute("search_files", {"path": ".", "pattern": "zzz"}, tmp_path)

    assert result == "No matches found."


@pytest.mark.asyncio
async def test_search_caps_results(tmp_path: Path):
    (tmp_path / "many.txt").write_text("hit\n" * 10, encoding="utf-8")

    result = await _registry(SearchFilesTool(max_results=3)).execute(
        "search_files", {"path": ".", "pattern": "hit"}, tmp_path
    )

    assert result.splitlines() == [
        "many.txt:1:hit",
        "many.txt:2:hit",
        "many.txt:3:hit",
        "(truncated at 3 matches)",
    ]


@pytest.mark.asyncio
async def test_search_invalid_regex_is_invalid_argument(tmp_path: Path):
    with pytest.raises(InvalidArgumentError):
        await _registry().execute("search_files", {"path": ".", "pattern": "("}, tmp_path)


@pytest.mark.asyncio
@pytest.mark.skipif(os.name != "posix", reason="symlinks need POSIX")
async def test_search_skips_symlinks_leaving_workspace(tmp_path: Path):
    workspace = tmp_path / "ws"
    outside = tmp_path / "outside"
    workspace.mkdir()
    outside.mkdir()
    (outside / "secret.txt").write_text("TOPSECRET\n", encoding="utf-8")
    (outside / "docs").mkdir()
    (outside / "docs" / "more.txt").write_text("TOPSECRET\n", encoding="utf-8")
    (workspace / "link.txt").symlink_to(outside / "secret.txt")
    (workspace / "linked_dir").symlink_to(outside / "docs", target_is_directory=True)
    (workspace / "plain.txt").write_text("nothing here\n", encoding="utf-8")

    result = await _registry().execute("search_files", {"path": ".", "pattern": "TOPSECRET"}, workspace)

    assert result == "No matches found."
