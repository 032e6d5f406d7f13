"""
Workspace containment for tool file paths.

Every file tool resolves its target through WorkspaceSandbox before doing
any I/O. A path that resolves outside the working directory (via `..`, an
absolute path, or a symlink) is rejected with SandboxViolation.
"""

from __future__ import annotations

import logging
from pathlib import Path

from relayagent.core.errors import SandboxViolation

logger = logging.getLogger(__name__)

OUTSIDE_WORK_DIR = "Path is outside working directory"


class WorkspaceSandbox:
    """Resolves tool paths against one working directory."""

    def __init__(self, work_dir: str | Path):
        self.raw_work_dir = Path(work_dir)
        try:
            self.root = self.raw_work_dir.resolve(strict=True)
        except OSError as e:
            raise SandboxViolation(f"Failed to resolve work dir: {e}") from e

    def _check(self, resolved: Path, original: str) -> None:
        try:
            resolved.relative_to(self.root)
        except ValueError:
            logger.debug("Rejected path %r (resolves to %s)", original, resolved)
            raise SandboxViolation(OUTSIDE_WORK_DIR) from None

    def resolve(self, path: str, must_exist: bool = True) -> Path:
        """
        Resolve a tool path inside the working directory.

        Args:
            path: Absolute, or relative to the working directory
            must_exist: Canonicalize the target itself; otherwise only its
                parent must exist (for writes that create files)

        Raises:
            SandboxViolation: On empty paths, unresolvable paths, or escapes
        """
        if not path or not path.strip():
            raise SandboxViolation("Path cannot be empty")

        candidate = Path(path)
        target = candidate if candidate.is_absolute() else self.raw_work_dir / candidate

        if must_exist:
            try:
                resolved = target.resolve(strict=True)
            except OSError as e:
                raise SandboxViolation(f"Failed to resolve path: {e}") from e
            self._check(resolved, path)
            return resolved

        try:
            parent = target.parent.resolve(strict=True)
        except OSError as e:
            raise SandboxViolation(f"Failed to resolve path: {e}") from e
        self._check(parent, path)

        resolved = parent / target.name
        # An existing entry (or dangling symlink) could still point elsewhere.
        if resolved.is_symlink() or resolved.exists():
            self._check(resolved.resolve(), path)
        return resolved


def resolve_path(work_dir: str | Path, path: str, must_exist: bool = True) -> Path:
    """Shortcut for WorkspaceSandbox(work_dir).resolve(path, must_exist)."""
    return WorkspaceSandbox(work_dir).resolve(path, must_exist=must_exist)
