from __future__ import annotations

import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

from support_agent.engine.errors import RepositoryLoadError
from support_agent.shared.services import repository
from support_agent.shared.services.repository import (
    build_repo_map,
    is_git_url,
    load_repository,
    repo_name_from_source,
)


def _make_tree(root: Path) -> None:
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "src" / "pkg" / "core.py").write_text("")
    (root / "README.md").write_text("")
    (root / "node_modules" / "left-pad").mkdir(parents=True)
    (root / ".git").mkdir()


def test_build_repo_map_lists_dirs_first_and_skips_vendor(tmp_path: Path) -> None:
    _make_tree(tmp_path)
    assert build_repo_map(tmp_path) == "src/\n  pkg/\n    core.py\nREADME.md"


def test_build_repo_map_truncates(tmp_path: Path) -> None:
    for i in range(5):
        (tmp_path / f"f{i}.txt").write_text("")
    out = build_repo_map(tmp_path, max_entries=3)
    assert out.splitlines() == ["f0.txt", "f1.txt", "f2.txt", "... (truncated after 3 entries)"]


@pytest.mark.parametrize(
    "source, expected",
    [
        ("https://github.com/org/repo.git", True),
        ("git@github.com:org/repo.git", True),
        ("https://github.com/org/repo", True),
        ("./local/dir", False),
    ],
)
def test_is_git_url(source: str, expected: bool) -> None:
    assert is_git_url(source) is expected


def test_repo_name_from_source() -> None:
    assert repo_name_from_source("https://github.com/org/repo.git") == "repo"
    assert repo_name_from_source("git@github.com:org/tool/") == "tool"


def test_load_local_directory(tmp_path: Path) -> None:
    _make_tree(tmp_path)
    repo = load_repository(str(tmp_path), tmp_path / "cache")
    assert repo.name == tmp_path.name
    assert repo.path == tmp_path.resolve()
    assert "core.py" in repo.repo_map


def test_load_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(RepositoryLoadError):
        load_repository(str(tmp_path / "missing"), tmp_path / "cache")


def test_git_url_is_shallow_cloned(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        target = Path(cmd[-1])
        (target / ".git").mkdir(parents=True)
        (target / "main.go").write_text("")
        return SimpleNamespace(returncode=0, stderr="")

    monkeypatch.setattr(repository.subprocess, "run", fake_run)
    repo = load_repository("https://github.com/org/svc.git", tmp_path / "cache")
    assert repo.name == "svc"
    assert calls[0][:4] == ["git", "clone", "--depth", "1"]
    assert repo.repo_map == "main.go"

    # Second load reuses the cached clone.
    load_repository("https://github.com/org/svc.git", tmp_path / "cache")
    assert len(calls) == 1


def test_clone_failure_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        repository.subprocess, "run",
        lambda cmd, **kw: SimpleNamespace(returncode=128, stderr="fatal: repository not found\n"),
    )
    with pytest.raises(RepositoryLoadError, match="repository not found"):
        load_repository("https://github.com/org/missing.git", tmp_path / "cache")


def test_clone_timeout_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def slow(cmd, **kw):
        raise subprocess.TimeoutExpired(cmd, 1)

    monkeypatch.setattr(repository.subprocess, "run", slow)
    with pytest.raises(RepositoryLoadError, match="timed out"):
        load_repository("https://github.com/org/slow.git", tmp_path / "cache")
