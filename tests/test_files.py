"""Tests for folded file context and the glob ignore policy."""

from __future__ import annotations

from contextfold.files.folded import (
    FileContextProvider,
    FoldedFileContext,
    GlobIgnorePolicy,
    IgnorePolicy,
    outline_python,
    outline_ts_js,
)
from contextfold.models.config import FoldedContextConfig

PYTHON_SOURCE = '''\
import os


class Loader:
    """Loads things."""

    def __init__(self, root):
        self.root = root

    async def load(self, name: str) -> bytes:
        return b""


@decorator
def helper(x, y=2):
    return x + y
'''

TS_SOURCE = """\
import { x } from "./x"

export class Client {
  constructor() {}
}

export async function fetchAll(urls: string[]) {
  return []
}

export const retry = async (fn: () => void) => {
  fn()
}

interface Options {
  timeout: number
}
"""


class TestOutlines:
    def test_python_outline(self):
        """Classes, methods and functions are listed with line ranges."""
        outline = outline_python(PYTHON_SOURCE)
        assert outline == [
            "4--11 | class Loader:",
            "  7--8 | def __init__(self, root):",
            "  10--11 | async def load(self, name: str) -> bytes:",
            "14--16 | def helper(x, y=2):",
        ]

    def test_python_syntax_error(self):
        """Unparsable Python yields no outline."""
        assert outline_python("def broken(:\n") == []

    def test_ts_outline(self):
        """Classes, functions, arrow-function constants and interfaces are found."""
        outline = outline_ts_js(TS_SOURCE)
        assert outline == [
            "3--3 | export class Client {",
            "7--7 | export async function fetchAll(urls: string[]) {",
            "11--11 | export const retry = async (fn: () => void) => {",
            "15--15 | interface Options {",
        ]


class TestFoldedFileContext:
    async def test_sections_for_supported_files(self, tmp_path):
        """Each readable source file becomes one reminder section."""
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "loader.py").write_text(PYTHON_SOURCE)
        (tmp_path / "client.ts").write_text(TS_SOURCE)

        result = await FoldedFileContext().generate(["src/loader.py", "client.ts"], str(tmp_path))

        assert result.files_processed == 2
        assert result.sections[0].startswith("<system-reminder>\n## File Context: src/loader.py\n")
        assert result.sections[0].endswith("\n</system-reminder>")
        assert "class Loader:" in result.sections[0]
        assert "## File Context: client.ts" in result.sections[1]

    async def test_absolute_paths(self, tmp_path):
        """Absolute paths are displayed relative to cwd."""
        path = tmp_path / "a.py"
        path.write_text("def f():\n    pass\n")
        result = await FoldedFileContext().generate([str(path)], str(tmp_path))
        assert "## File Context: a.py" in result.sections[0]

    async def test_missing_and_unsupported_skipped(self, tmp_path):
        """Missing files and unsupported types are skipped, not fatal."""
        (tmp_path / "notes.md").write_text("# Notes")
        (tmp_path / "ok.py").write_text("def f():\n    pass\n")
        result = await FoldedFileContext().generate(
            ["missing.py", "notes.md", "ok.py"], str(tmp_path)
        )
        assert result.files_processed == 1
        assert result.files_skipped == 2

    async def test_ignored_files_skipped(self, tmp_path):
        """Files matched by the ignore policy are never read."""
        (tmp_path / "secret.py").write_text("def token():\n    pass\n")
        policy = GlobIgnorePolicy(["secret.py"], cwd=str(tmp_path))
        result = await FoldedFileContext().generate(["secret.py"], str(tmp_path), policy)
        assert result.sections == []

    async def test_dedup_and_max_files(self, tmp_path):
        """Duplicates are folded once and the file count is capped."""
        for name in ("a.py", "b.py", "c.py"):
            (tmp_path / name).write_text("def f():\n    pass\n")
        provider = FoldedFileContext(FoldedContextConfig(max_files=2))
        result = await provider.generate(["a.py", "a.py", "b.py", "c.py"], str(tmp_path))
        assert result.files_processed == 2
        assert result.files_skipped == 1

    async def test_max_definitions(self, tmp_path):
        """Definitions beyond the limit are dropped."""
        source = "\n".join(f"def f{i}():\n    pass\n" for i in range(10))
        (tmp_path / "many.py").write_text(source)
        provider = FoldedFileContext(FoldedContextConfig(max_definitions=3))
        result = await provider.generate(["many.py"], str(tmp_path))
        assert result.sections[0].count(" | def ") == 3

    async def test_char_limit(self, tmp_path):
        """Oversized sections are cut on a line boundary."""
        source = "\n".join(f"def function_with_long_name_{i}():\n    pass\n" for i in range(100))
        (tmp_path / "big.py").write_text(source)
        provider = FoldedFileContext(FoldedContextConfig(max_chars_per_file=500))
        result = await provider.generate(["big.py"], str(tmp_path))
        assert "[... truncated]" in result.sections[0]
        assert len(result.sections[0]) < 700

    def test_satisfies_protocol(self):
        """The default provider matches FileContextProvider."""
        assert isinstance(FoldedFileContext(), FileContextProvider)


class TestGlobIgnorePolicy:
    def test_matches_relative_patterns(self, tmp_path):
        """Patterns match the path relative to cwd."""
        policy = GlobIgnorePolicy(["*.env", "build/*"], cwd=str(tmp_path))
        assert policy.is_ignored(str(tmp_path / "prod.env"))
        assert policy.is_ignored(str(tmp_path / "build" / "out.js"))
        assert not policy.is_ignored(str(tmp_path / "src" / "app.py"))

    def test_directory_component(self):
        """A bare name matches any path component."""
        policy = GlobIgnorePolicy(["node_modules/"])
        assert policy.is_ignored("web/node_modules/react/index.js")

    def test_comments_and_blanks(self):
        """Comments and blank lines are not patterns."""
        policy = GlobIgnorePolicy(["# secrets", "", "  ", "*.pem"])
        assert policy.patterns == ["*.pem"]

    def test_from_file(self, tmp_path):
        """Patterns load from an ignore file; a missing file ignores nothing."""
        ignore_file = tmp_path / ".contextignore"
        ignore_file.write_text("*.key\n")
        assert GlobIgnorePolicy.from_file(ignore_file).is_ignored("id.key")
        assert not GlobIgnorePolicy.from_file(tmp_path / "absent").is_ignored("id.key")

    def test_satisfies_protocol(self):
        """GlobIgnorePolicy matches IgnorePolicy."""
        assert isinstance(GlobIgnorePolicy([]), IgnorePolicy)
