"""Repository loading from local directories and git URLs.

Produces the file tree summary that the context builder prefixes to
the first question about a repository.
"""
from __future__ import annotations

import hashlib
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from support_agent.engine.errors import RepositoryLoadError

logger = logging.getLogger(__name__)

SKIP_DIRS: set[str] = {
    ".git", "node_modules", "__pycache__", ".venv", "venv",
    "target", "build", "dist", ".tox", ".mypy_cache",
    ".pytest_cache", ".ruff_cache", ".eggs", ".next", ".idea",
}

MAX_TREE_ENTRIES = 500
CLONE_TIMEOUT_SECONDS = 300

_GIT_URL_RE = re.compile(r"^(https?://|git@|ssh://)|\.git/?$")


@dataclass
class LoadedRepository:
    name: str
    path: Path
    repo_map: str


def is_git_url(source: str) -> bool:
    return bool(_GIT_URL_RE.search(source.strip()))


def repo_name_from_source(source: str) -> str:
    cleaned = source.strip().rstrip("/")
    if cleaned.endswith(".git"):
        cleaned = cleaned[:-4]
    name = re.split(r"[/:]", cleaned)[-1]
    return name or "repository"


def _clone_dir(source: str, cache_dir: Path) -> Path:
    digest = hashlib.sha1(source.encode("utf-8")).hexdigest()[:10]
    return cache_dir / f"{repo_name_from_source(source)}-{digest}"


def clone_repository(url: str, cache_dir: Path) -> Path:
    """Shallow-clone *url* into *cache_dir*, reusing an earlier clone."""
    target = _clone_dir(url, cache_dir)
    if (target / ".git").is_dir():
        logger.info("Reusing cached clone of %s at %s", url, target)
        return target

    cache_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Cloning %s into %s", url, target)
    try:
        result = subprocess.run(
            ["git", "clone", "--depth", "1", url, str(target)],
            capture_output=True,
            text=True,
            timeout=CLONE_TIMEOUT_SECONDS,
        )
    except FileNotFoundError as exc:
        raise RepositoryLoadError(url, "git not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise RepositoryLoadError(url, "git clone timed out") from exc
    if result.returncode != 0:
        raise RepositoryLoadError(url, result.stderr.strip() or "git clone failed")
    return target


def build_repo_map(root: Path, max_entries: int = MAX_TREE_ENTRIES) -> str:
    """Indented file tree of *root*, skipping VCS and build directories."""
    lines: list[str] = []
    truncated = False

    def walk(directory: Path, depth: int) -> None:
        nonlocal truncated
        try:
            items = sorted(
                directory.iterdir(),
                key=lambda p: (not p.is_dir(), p.name.lower()),
            )
        except OSError:
            return
        for item in items:
            if item.name in SKIP_DIRS:
                continue
            if len(lines) >= max_entries:
                truncated = True
                return
            indent = "  " * depth
            if item.is_dir():
                lines.append(f"{indent}{item.name}/")
                walk(item, depth + 1)
                if truncated:
                    return
            else:
                lines.append(f"{indent}{item.name}")

    walk(root, 0)
    if truncated:
        lines.append(f"... (truncated after {max_entries} entries)")
    return "\n".join(lines)


def load_repository(source: str, cache_dir: Path) -> LoadedRepository:
    """Resolve *source* to a directory on disk and summarise it."""
    if is_git_url(source) and not Path(source).expanduser().is_dir():
        path = clone_repository(source, cache_dir)
        name = repo_name_from_source(source)
    else:
        path = Path(source).expanduser().resolve()
        if not path.is_dir():
            raise RepositoryLoadError(source, "not a directory")
        name = path.name

    repo_map = build_repo_map(path)
    logger.info(
        "Loaded repository %s from %s (%d tree lines)",
        name, path, repo_map.count("\n") + 1 if repo_map else 0,
    )
    return LoadedRepository(name=name, path=path, repo_map=repo_map)
