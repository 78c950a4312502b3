"""Post-install rules: relocation, cleanup and extra dependencies.

Rules are data. Each one is a list of filesystem steps plus the packages
the artifact needs, looked up by a stable rule id. A rule may carry
variants keyed by UI toolkit major version; the matching variant replaces
the base rule wholesale.

Pattern: Strategy - every step type knows how to apply itself, so the
engine only walks the list.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from obs_install.errors import RuleError
from obs_install.protocols import FileSystem

logger = logging.getLogger(__name__)


class StepFailed(Exception):
    """Raised by a step whose preconditions do not hold."""

    pass


class BaseStep(BaseModel, ABC):
    """Base class for rule steps.

    Relative paths are resolved against the artifact's target directory.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    @abstractmethod
    def apply(self, root: Path, fs: FileSystem) -> None:
        """Apply the step below root."""
        ...


class MkdirStep(BaseStep):
    """Create a directory and its parents."""

    op: Literal["mkdir"]
    path: str

    def apply(self, root: Path, fs: FileSystem) -> None:
        fs.mkdir(root / self.path, parents=True, exist_ok=True)


def _replace(src: Path, dst: Path, fs: FileSystem) -> None:
    """Move src to dst, replacing anything already at dst."""
    if fs.exists(dst):
        fs.remove(dst)
    fs.mkdir(dst.parent, parents=True, exist_ok=True)
    fs.move(src, dst)


class MoveStep(BaseStep):
    """Move a file or directory to an exact destination path.

    A missing source with the destination already in place means an
    earlier run did the move.
    """

    op: Literal["move"]
    src: str
    dst: str

    def apply(self, root: Path, fs: FileSystem) -> None:
        src = root / self.src
        dst = root / self.dst
        if not fs.exists(src):
            if fs.exists(dst):
                return
            raise StepFailed(f"{self.src} not found")
        _replace(src, dst, fs)


class MoveContentsStep(BaseStep):
    """Move every child of a directory into another directory.

    A missing source with the destination directory in place means an
    earlier run did the move.
    """

    op: Literal["move_contents"]
    src: str
    dst: str = "."

    def apply(self, root: Path, fs: FileSystem) -> None:
        src = root / self.src
        dst = root / self.dst
        if not fs.exists(src) and fs.is_dir(dst):
            return
        if not fs.is_dir(src):
            raise StepFailed(f"{self.src} is not a directory")
        for child in fs.iterdir(src):
            _replace(child, dst / child.name, fs)


class RemoveStep(BaseStep):
    """Remove paths matching a glob; nothing matching is fine."""

    op: Literal["remove"]
    path: str

    def apply(self, root: Path, fs: FileSystem) -> None:
        for match in fs.glob(root, self.path):
            fs.remove(match)


class SymlinkStep(BaseStep):
    """Link dst to src, replacing an existing link.

    dst may be absolute, e.g. a path in the system-wide plugin directory.
    """

    op: Literal["symlink"]
    src: str
    dst: str

    def apply(self, root: Path, fs: FileSystem) -> None:
        src = root / self.src
        link = root / self.dst
        if not fs.exists(src):
            raise StepFailed(f"{self.src} not found")
        if fs.exists(link):
            fs.remove(link)
        fs.mkdir(link.parent, parents=True, exist_ok=True)
        fs.symlink(src, link)


RuleStep = Annotated[
    Union[MkdirStep, MoveStep, MoveContentsStep, RemoveStep, SymlinkStep],
    Field(discriminator="op"),
]


class RuleVariant(BaseModel):
    """Steps and package changes for one toolkit flavour of a rule."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    steps: list[RuleStep] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)
    remove_packages: list[str] = Field(default_factory=list)


class PostInstallRule(RuleVariant):
    """A rule with optional per-toolkit variants."""

    variants: dict[int, RuleVariant] = Field(default_factory=dict)

    def for_toolkit(self, major: int) -> RuleVariant:
        """Select the variant for a toolkit major version.

        Args:
            major: UI toolkit major version.

        Returns:
            The matching variant, or the base rule when none matches.
        """
        return self.variants.get(major, self)


class RuleEngine:
    """Applies post-install rules to a target directory."""

    def __init__(self, rules: dict[str, PostInstallRule], filesystem: FileSystem) -> None:
        """Initialize the engine.

        Args:
            rules: Rule table keyed by rule id.
            filesystem: Filesystem abstraction.
        """
        self.rules = rules
        self.fs = filesystem

    def get_rule(self, rule_id: str) -> PostInstallRule | None:
        """Get a rule by id, None if unregistered."""
        return self.rules.get(rule_id)

    def select(self, rule_id: str | None, toolkit_major: int) -> RuleVariant | None:
        """Select the variant of rule_id that applies to a toolkit.

        Returns:
            The variant, or None when there is no rule to apply.
        """
        if rule_id is None:
            return None
        rule = self.get_rule(rule_id)
        if rule is None:
            return None
        return rule.for_toolkit(toolkit_major)

    def apply(self, rule_id: str, root: Path, toolkit_major: int) -> None:
        """Run the filesystem steps of a rule below root.

        Package changes are left to the caller (see `select()`), which
        decides how package failures are treated.

        Args:
            rule_id: Rule id. Unregistered ids are a no-op.
            root: Target directory the artifact was extracted into.
            toolkit_major: UI toolkit major version.

        Raises:
            RuleError: If a step fails.
        """
        variant = self.select(rule_id, toolkit_major)
        if variant is None:
            return

        for step in variant.steps:
            logger.debug("Rule %s: %s", rule_id, step)
            try:
                step.apply(root, self.fs)
            except StepFailed as e:
                raise RuleError(rule_id, str(e)) from e
            except OSError as e:
                raise RuleError(rule_id, f"{step.op}: {e}") from e
