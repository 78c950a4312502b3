"""Subprocess execution with consistent logging."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from obs_install.errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    """Outcome of a finished command."""

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def format_argv(argv: Sequence[str]) -> str:
    """Render an argv list as a shell-quoted string for logs."""
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> CmdResult:
    """Run a command and capture its output.

    Args:
        argv: Command and arguments. Never passed through a shell.
        check: Raise CommandError on a non-zero exit status.
        env: Extra environment variables layered over os.environ.
        cwd: Working directory.

    Returns:
        CmdResult with exit status and captured output.

    Raises:
        CommandError: If check is True and the command fails, or the
            executable cannot be started.
    """
    argv_list = list(argv)
    logger.debug("CMD %s", format_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        raise CommandError(argv_list, 127, str(e)) from e

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, p.stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)
