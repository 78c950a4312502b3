"""Filesystem abstraction for testability.

The RealFileSystem implementation wraps standard library Path, os and
shutil operations. Satisfies the FileSystem protocol structurally.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path


class RealFileSystem:
    """Production filesystem implementation."""

    def exists(self, path: Path) -> bool:
        """Check if a path exists, counting dangling symlinks."""
        return path.exists() or path.is_symlink()

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        return path.is_dir()

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        path.mkdir(parents=parents, exist_ok=exist_ok)

    def remove(self, path: Path) -> None:
        """Remove a file, symlink or directory tree."""
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()

    def move(self, src: Path, dst: Path) -> None:
        """Move a file or directory."""
        shutil.move(str(src), str(dst))

    def symlink(self, target: Path, link: Path) -> None:
        """Create a symbolic link at link pointing to target."""
        link.symlink_to(target)

    def glob(self, root: Path, pattern: str) -> list[Path]:
        """Expand a glob pattern relative to root, sorted."""
        return sorted(root.glob(pattern))

    def iterdir(self, path: Path) -> list[Path]:
        """List the direct children of a directory, sorted."""
        return sorted(path.iterdir())

    def chown_tree(self, path: Path, uid: int, gid: int) -> None:
        """Recursively change ownership of path and everything below it."""
        os.chown(path, uid, gid, follow_symlinks=False)
        for dirpath, dirnames, filenames in os.walk(path):
            for name in dirnames + filenames:
                os.chown(os.path.join(dirpath, name), uid, gid, follow_symlinks=False)
