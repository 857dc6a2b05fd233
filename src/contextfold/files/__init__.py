"""Folded file context for condensation summaries."""

from contextfold.files.folded import (
    FileContextProvider,
    FoldedFileContext,
    FoldedFileContextResult,
    GlobIgnorePolicy,
    IgnorePolicy,
)

__all__ = [
    "FileContextProvider",
    "FoldedFileContext",
    "FoldedFileContextResult",
    "GlobIgnorePolicy",
    "IgnorePolicy",
]
