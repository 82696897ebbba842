"""In-memory lexical index over fixed-size line windows of a workspace."""

from __future__ import annotations

import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Sequence

from ..tools.files import is_within

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_LINES = 200
DEFAULT_MAX_DEPTH = 8
DEFAULT_MAX_FILE_BYTES = 1_000_000
SNIPPET_MAX_CHARS = 2000
SNIPPET_MARKER = "\n...[truncated]"

_TOKEN_PATTERN = re.compile(r"[a-z0-9_]+")
_SKIP_DIRECTORIES = frozenset(
    {".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv", ".mypy_cache", ".pytest_cache"}
)


def tokenize(text: str) -> List[str]:
    """Split ``text`` into lowercase alphanumeric/underscore tokens."""
    return _TOKEN_PATTERN.findall(text.lower())


@dataclass(slots=True)
class Chunk:
    """Window of consecutive lines from a single file."""

    absolute_path: Path
    relative_path: str
    line_start: int
    line_end: int
    text: str
    term_frequencies: Counter = field(default_factory=Counter)
    token_count: int = 0

    def score(self, terms: Sequence[str]) -> float:
        if not self.token_count:
            return 0.0
        return sum(self.term_frequencies.get(term, 0) / self.token_count for term in terms)


@dataclass(slots=True)
class RetrievalHit:
    """Search result returned to the executor."""

    path: str
    relative_path: str
    line_range: str
    snippet: str
    score: float

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "relativePath": self.relative_path,
            "lineRange": self.line_range,
            "snippet": self.snippet,
            "score": self.score,
        }


class WorkspaceIndex:
    """Flat, ordered collection of chunks built once per session."""

    def __init__(self, root: Path, chunks: Sequence[Chunk] = ()) -> None:
        self.root = root
        self._chunks: List[Chunk] = list(chunks)

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return tuple(self._chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    @classmethod
    def build(
        cls,
        root: Path | str,
        *,
        chunk_lines: int = DEFAULT_CHUNK_LINES,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
    ) -> "WorkspaceIndex":
        """Walk ``root`` and chunk every eligible text file."""
        if chunk_lines <= 0:
            raise ValueError("chunk_lines must be positive.")
        root_path = Path(root).resolve()
        index = cls(root_path)
        for path in _iter_files(root_path, max_depth):
            try:
                size = path.stat().st_size
            except OSError:
                LOGGER.debug("Skipping unreadable file %s", path)
                continue
            if size > max_file_bytes:
                LOGGER.debug("Skipping oversized file %s (%d bytes)", path, size)
                continue
            try:
                raw = path.read_bytes()
            except OSError:
                LOGGER.debug("Skipping unreadable file %s", path)
                continue
            if b"\0" in raw:
                continue
            text = raw.decode("utf-8", errors="replace")
            index._chunks.extend(_chunk_file(path, root_path, text, chunk_lines))
        LOGGER.debug("Indexed %d chunk(s) under %s", len(index._chunks), root_path)
        return index

    def search(self, query: str, top_k: int = 5) -> List[RetrievalHit]:
        """Return the ``top_k`` chunks with the highest normalized term frequency."""
        terms = sorted(set(tokenize(query)))
        if not terms or top_k <= 0:
            return []
        scored = []
        for chunk in self._chunks:
            value = chunk.score(terms)
            if value > 0:
                scored.append((value, chunk))
        # sorted() is stable, so equal scores keep build order.
        scored.sort(key=lambda item: item[0], reverse=True)
        return [_to_hit(chunk, value) for value, chunk in scored[:top_k]]


def _iter_files(root: Path, max_depth: int) -> Iterator[Path]:
    for current, dirnames, filenames in os.walk(root):
        current_path = Path(current)
        depth = len(current_path.relative_to(root).parts)
        if depth >= max_depth:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(name for name in dirnames if name not in _SKIP_DIRECTORIES)
        for name in sorted(filenames):
            candidate = current_path / name
            if not candidate.is_file():
                continue
            if not is_within(candidate, root):
                LOGGER.debug("Skipping %s; it resolves outside %s", candidate, root)
                continue
            yield candidate


def _chunk_file(path: Path, root: Path, text: str, chunk_lines: int) -> Iterator[Chunk]:
    lines = text.splitlines()
    relative = path.relative_to(root).as_posix()
    for offset in range(0, len(lines), chunk_lines):
        window = lines[offset : offset + chunk_lines]
        body = "\n".join(window)
        tokens = tokenize(body)
        yield Chunk(
            absolute_path=path,
            relative_path=relative,
            line_start=offset + 1,
            line_end=offset + len(window),
            text=body,
            term_frequencies=Counter(tokens),
            token_count=len(tokens),
        )


def _to_hit(chunk: Chunk, score: float) -> RetrievalHit:
    snippet = chunk.text
    if len(snippet) > SNIPPET_MAX_CHARS:
        snippet = snippet[:SNIPPET_MAX_CHARS] + SNIPPET_MARKER
    return RetrievalHit(
        path=str(chunk.absolute_path),
        relative_path=chunk.relative_path,
        line_range=f"{chunk.line_start}-{chunk.line_end}",
        snippet=snippet,
        score=round(score, 4),
    )


__all__ = ["Chunk", "RetrievalHit", "WorkspaceIndex", "tokenize"]
