"""Git helpers for stamping build provenance."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Iterable

from .errors import BuildError
from .logging import get_logger

GitRunner = Callable[..., str]

_logger = get_logger("vcs")


def current_commit_hash(root: Path, runner: GitRunner | None = None) -> str:
    """Return the HEAD commit of the checkout containing ``root``."""
    run = runner or _default_runner
    try:
        output = run(["git", "rev-parse", "HEAD"], cwd=root)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise BuildError(f"Unable to read the commit hash in {root}: {exc}") from exc
    commit = output.strip()
    if not commit:
        raise BuildError(f"git rev-parse HEAD returned no commit in {root}")
    _logger.debug("Resolved HEAD to %s", commit)
    return commit


def _default_runner(args: Iterable[str], *, cwd: Path) -> str:
    completed = subprocess.run(
        list(args),
        cwd=str(cwd),
        check=True,
        text=True,
        capture_output=True,
    )
    return completed.stdout


__all__ = ["GitRunner", "current_commit_hash"]
