from __future__ import annotations

from pathlib import Path

import pytest

from copilot_agent.memory.workspace_index import SNIPPET_MARKER, WorkspaceIndex, tokenize


def _write(root: Path, relative: str, text: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_tokenize_lowercases_and_splits_on_punctuation() -> None:
    assert tokenize("Read_File(path), TOP-k 42!") == ["read_file", "path", "top", "k", "42"]


def test_score_is_normalised_term_frequency(tmp_path: Path) -> None:
    _write(tmp_path, "notes.txt", "a a a b")
    index = WorkspaceIndex.build(tmp_path)

    [single] = index.search("a")
    [both] = index.search("a b")

    assert single.score == 0.75
    assert both.score == 1.0
    assert index.search("a missing")[0].score == 0.75
    assert index.search("missing") == []


def test_repeated_query_terms_count_once(tmp_path: Path) -> None:
    _write(tmp_path, "notes.txt", "a a a b")
    index = WorkspaceIndex.build(tmp_path)

    assert index.search("a A a")[0].score == 0.75


def test_ties_keep_build_order_and_top_k_limits(tmp_path: Path) -> None:
    _write(tmp_path, "b.txt", "alpha beta")
    _write(tmp_path, "a.txt", "alpha beta")
    _write(tmp_path, "c.txt", "alpha alpha")
    index = WorkspaceIndex.build(tmp_path)

    hits = index.search("alpha", top_k=2)

    assert [hit.relative_path for hit in hits] == ["c.txt", "a.txt"]
    assert [hit.score for hit in hits] == [1.0, 0.5]


def test_files_are_chunked_by_line_windows(tmp_path: Path) -> None:
    lines = [f"line {number}" for number in range(1, 6)]
    lines[3] = "needle here"
    _write(tmp_path, "long.txt", "\n".join(lines))
    index = WorkspaceIndex.build(tmp_path, chunk_lines=2)

    assert len(index) == 3
    [hit] = index.search("needle")
    assert hit.line_range == "3-4"
    payload = hit.to_dict()
    assert set(payload) == {"path", "relativePath", "lineRange", "snippet", "score"}
    assert payload["relativePath"] == "long.txt"


def test_snippets_are_truncated_with_marker(tmp_path: Path) -> None:
    _write(tmp_path, "big.txt", "word " * 1000)
    index = WorkspaceIndex.build(tmp_path)

    [hit] = index.search("word")

    assert hit.snippet.endswith(SNIPPET_MARKER)
    assert len(hit.snippet) == 2000 + len(SNIPPET_MARKER)


def test_build_skips_vcs_binary_and_oversized_files(tmp_path: Path) -> None:
    _write(tmp_path, ".git/config", "token")
    _write(tmp_path, "node_modules/pkg/index.js", "token")
    (tmp_path / "blob.bin").write_bytes(b"token\0token")
    _write(tmp_path, "huge.txt", "token " * 100)
    _write(tmp_path, "kept.txt", "token")

    index = WorkspaceIndex.build(tmp_path, max_file_bytes=100)

    assert [hit.relative_path for hit in index.search("token")] == ["kept.txt"]


def test_build_respects_max_depth(tmp_path: Path) -> None:
    _write(tmp_path, "top.txt", "deep")
    _write(tmp_path, "one/two/three.txt", "deep")

    index = WorkspaceIndex.build(tmp_path, max_depth=1)

    assert [hit.relative_path for hit in index.search("deep")] == ["top.txt"]


def test_build_skips_symlinks_that_leave_the_root(tmp_path: Path) -> None:
    root = tmp_path / "ws"
    outside = _write(tmp_path, "secret.txt", "hidden token")
    _write(root, "inside.txt", "visible token")
    try:
        (root / "escape.txt").symlink_to(outside)
        (root / "alias.txt").symlink_to(root / "inside.txt")
    except OSError:
        pytest.skip("symlinks are not supported here")

    index = WorkspaceIndex.build(root)

    assert sorted(hit.relative_path for hit in index.search("token")) == ["alias.txt", "inside.txt"]
