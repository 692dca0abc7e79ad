"""
Path helpers for repository layout.

Layout:
- data/state/: declaration store and other instance state (gitignored)
- logs/: server logs
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional


@lru_cache(maxsize=1)
def repo_root() -> Path:
    # This file lives at kb_retrieval/api/paths.py -> parents: api/ -> kb_retrieval/ -> repo root
    return Path(__file__).resolve().parents[2]


def data_state_dir() -> Path:
    return repo_root() / "data" / "state"


def resolve_repo_path(path: Path) -> Path:
    """Anchor relative paths at the repository root."""
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = repo_root() / candidate
    return candidate


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def ensure_local_file(*, local_path: Path, initial_text: Optional[str] = None) -> None:
    """Ensure a writable local file exists, seeding it with initial_text."""
    if local_path.exists():
        return

    ensure_dir(local_path.parent)
    local_path.write_text(initial_text or "", encoding="utf-8")
