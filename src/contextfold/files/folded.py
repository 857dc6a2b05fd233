"""Folded file context: structural outlines of files read during a task.

After a condensation the model no longer sees the file contents it read
earlier. Each summary therefore carries one ``<system-reminder>`` section per
previously read file listing its definitions (classes, functions, methods)
with line ranges, so work can continue without re-reading everything.
"""

from __future__ import annotations

import ast
import fnmatch
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field

from contextfold.models.config import FoldedContextConfig

FileType = Literal["python", "typescript", "javascript", "unsupported"]

_EXTENSION_MAP: dict[str, FileType] = {
    ".py": "python",
    ".pyi": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".mts": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

_TS_JS_DEFINITION_RE = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
    r"(?:class|interface|enum|type|function\*?|namespace)\s+[\w$]+"
    r"|^\s*(?:export\s+)?(?:const|let|var)\s+[\w$]+\s*(?::[^=]+)?=\s*(?:async\s+)?"
    r"(?:\([^)]*\)|[\w$]+)\s*(?::[^=]+)?=>"
)

_SECTION_TEMPLATE = "<system-reminder>\n## File Context: {path}\n{body}\n</system-reminder>"


@runtime_checkable
class IgnorePolicy(Protocol):
    """Decides whether a file may be exposed to the model."""

    def is_ignored(self, path: str) -> bool: ...


class FoldedFileContextResult(BaseModel):
    """Sections produced for a set of files. Files that failed are simply absent."""

    sections: list[str] = Field(default_factory=list)
    files_processed: int = 0
    files_skipped: int = 0
    total_chars: int = 0


@runtime_checkable
class FileContextProvider(Protocol):
    """Produces folded file context sections for a summary message."""

    async def generate(
        self,
        paths: Sequence[str],
        cwd: str,
        ignore_policy: IgnorePolicy | None = None,
    ) -> FoldedFileContextResult: ...


class GlobIgnorePolicy:
    """
    Ignore policy backed by gitignore-style glob patterns.

    Patterns are matched with :mod:`fnmatch` against the path relative to
    ``cwd`` and against each of its path components, so ``node_modules`` and
    ``*.env`` both behave as expected. Blank lines and ``#`` comments are
    skipped; a trailing ``/`` matches a directory name.

    Example::

        policy = GlobIgnorePolicy.from_file("/repo/.contextignore", cwd="/repo")
        policy.is_ignored("/repo/secrets/api.env")
    """

    def __init__(self, patterns: Iterable[str], cwd: str | None = None) -> None:
        self._patterns = [
            p.strip().rstrip("/")
            for p in patterns
            if p.strip() and not p.strip().startswith("#")
        ]
        self._cwd = Path(cwd).resolve() if cwd else None

    @classmethod
    def from_file(cls, path: str | Path, cwd: str | None = None) -> GlobIgnorePolicy:
        """Load patterns from an ignore file. A missing file ignores nothing."""
        file_path = Path(path)
        if not file_path.exists():
            return cls([], cwd)
        return cls(file_path.read_text(encoding="utf-8").splitlines(), cwd)

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def is_ignored(self, path: str) -> bool:
        candidate = Path(path)
        if self._cwd is not None and candidate.is_absolute():
            try:
                candidate = candidate.resolve().relative_to(self._cwd)
            except ValueError:
                pass
        relative = candidate.as_posix()
        parts = candidate.parts
        for pattern in self._patterns:
            if fnmatch.fnmatch(relative, pattern):
                return True
            if any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True
        return False


class FoldedFileContext:
    """
    Default :class:`FileContextProvider`: AST outlines for Python, regex outlines for TS/JS.

    Paths are deduplicated in order and capped at ``max_files``. Missing,
    ignored, unsupported or unparsable files are skipped; one failing file
    never prevents the others from being folded.
    """

    def __init__(self, config: FoldedContextConfig | None = None) -> None:
        self._config = config or FoldedContextConfig()
        self._logger = structlog.get_logger("contextfold.files")

    async def generate(
        self,
        paths: Sequence[str],
        cwd: str,
        ignore_policy: IgnorePolicy | None = None,
    ) -> FoldedFileContextResult:
        """
        Build one section per readable, supported file.

        Args:
            paths: Paths as recorded by the agent (absolute or relative to ``cwd``).
            cwd: Task working directory.
            ignore_policy: Files it ignores are never read.

        Returns:
            FoldedFileContextResult with the sections in input order.
        """
        result = FoldedFileContextResult()
        root = Path(cwd)

        unique: list[str] = list(dict.fromkeys(paths))
        for raw_path in unique[: self._config.max_files]:
            file_path = Path(raw_path)
            if not file_path.is_absolute():
                file_path = root / file_path
            try:
                section = self._fold_file(file_path, root, ignore_policy)
            except Exception as exc:
                self._logger.warning("folded_file_failed", path=raw_path, error=str(exc))
                section = None
            if section is None:
                result.files_skipped += 1
                continue
            result.sections.append(section)
            result.files_processed += 1
            result.total_chars += len(section)

        result.files_skipped += max(0, len(unique) - self._config.max_files)
        self._logger.debug(
            "folded_context_generated",
            files_processed=result.files_processed,
            files_skipped=result.files_skipped,
            total_chars=result.total_chars,
        )
        return result

    def _fold_file(
        self,
        file_path: Path,
        root: Path,
        ignore_policy: IgnorePolicy | None,
    ) -> str | None:
        if ignore_policy is not None and ignore_policy.is_ignored(str(file_path)):
            return None
        if not file_path.is_file():
            return None

        file_type = _EXTENSION_MAP.get(file_path.suffix.lower(), "unsupported")
        if file_type == "unsupported":
            return None

        content = file_path.read_text(encoding="utf-8", errors="replace")
        if file_type == "python":
            definitions = outline_python(content)
        else:
            definitions = outline_ts_js(content)
        if not definitions:
            return None

        body = "\n".join(definitions[: self._config.max_definitions])
        limit = self._config.max_chars_per_file
        if len(body) > limit:
            body = body[:limit].rsplit("\n", 1)[0] + "\n[... truncated]"
        return _SECTION_TEMPLATE.format(path=_display_path(file_path, root), body=body)


def _display_path(file_path: Path, root: Path) -> str:
    try:
        return file_path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return file_path.as_posix()


def outline_python(content: str) -> list[str]:
    """
    List class and function definitions as ``start--end | signature`` lines.

    Nested definitions are indented two spaces per level. Returns an empty
    list when the source does not parse.
    """
    try:
        tree = ast.parse(content)
    except SyntaxError:
        return []

    source_lines = content.splitlines()
    out: list[str] = []

    def visit(nodes: Iterable[ast.stmt], depth: int) -> None:
        for node in nodes:
            if isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
                first = node.decorator_list[0].lineno if node.decorator_list else node.lineno
                end = node.end_lineno or node.lineno
                signature = source_lines[node.lineno - 1].strip()
                out.append(f"{'  ' * depth}{first}--{end} | {signature}")
                visit(node.body, depth + 1)

    visit(tree.body, 0)
    return out


def outline_ts_js(content: str) -> list[str]:
    """List TypeScript/JavaScript declarations as ``line--line | text`` lines."""
    out: list[str] = []
    for number, line in enumerate(content.splitlines(), start=1):
        if _TS_JS_DEFINITION_RE.match(line):
            out.append(f"{number}--{number} | {line.strip()}")
    return out
