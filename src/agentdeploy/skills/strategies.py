"""
Install strategies for placing a skill directory into an agent directory.

The installer only talks to ``InstallStrategy.install``; whether the skill
ends up symlinked or copied is decided here. ``FallbackInstaller`` composes
a symlink strategy with a copy strategy and records when the symlink
attempt failed.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path

logger = logging.getLogger(__name__)

MODES = ("symlink", "copy")


@dataclass(frozen=True)
class StrategyResult:
    """Outcome of placing one skill directory."""

    mode: str
    path: Path
    symlink_failed: bool = False


def same_location(a: Path, b: Path) -> bool:
    """True when both paths resolve to the same real location."""
    return os.path.realpath(a) == os.path.realpath(b)


def remove_path(path: Path) -> bool:
    """
    Remove a symlink, file or directory tree.

    Returns:
        True if something was removed
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


class InstallStrategy(ABC):
    """Places a source skill directory at a target path."""

    mode: str

    @abstractmethod
    def install(self, source_dir: Path, target_dir: Path) -> StrategyResult:
        """
        Place ``source_dir`` at ``target_dir``, replacing what is there.

        Raises:
            OSError: If the filesystem refuses the operation
        """


class SymlinkInstaller(InstallStrategy):
    """Relative symlink from the target path to the source directory."""

    mode = "symlink"

    def install(self, source_dir: Path, target_dir: Path) -> StrategyResult:
        if target_dir.exists() and same_location(source_dir, target_dir):
            logger.debug(f"{target_dir} already points at {source_dir}")
            return StrategyResult(self.mode, target_dir)

        target_dir.parent.mkdir(parents=True, exist_ok=True)
        remove_path(target_dir)

        link = os.path.relpath(os.path.realpath(source_dir), os.path.realpath(target_dir.parent))
        target_dir.symlink_to(link, target_is_directory=True)
        logger.debug(f"Linked {target_dir} -> {link}")
        return StrategyResult(self.mode, target_dir)


class CopyInstaller(InstallStrategy):
    """Full recursive copy of the source directory."""

    mode = "copy"

    def install(self, source_dir: Path, target_dir: Path) -> StrategyResult:
        # A link is replaced by a real copy; only the directory itself is a no-op
        if not target_dir.is_symlink() and target_dir.exists() and same_location(source_dir, target_dir):
            return StrategyResult(self.mode, target_dir)

        target_dir.parent.mkdir(parents=True, exist_ok=True)
        remove_path(target_dir)

        shutil.copytree(
            source_dir, target_dir, symlinks=True, ignore=shutil.ignore_patterns(".git")
        )
        logger.debug(f"Copied {source_dir} to {target_dir}")
        return StrategyResult(self.mode, target_dir)


class FallbackInstaller(InstallStrategy):
    """Try a primary strategy, falling back to another on OSError."""

    def __init__(self, primary: InstallStrategy, fallback: InstallStrategy) -> None:
        self.primary = primary
        self.fallback = fallback
        self.mode = primary.mode

    def install(self, source_dir: Path, target_dir: Path) -> StrategyResult:
        try:
            return self.primary.install(source_dir, target_dir)
        except OSError as e:
            logger.warning(
                f"{self.primary.mode} install to {target_dir} failed ({e}); "
                f"falling back to {self.fallback.mode}"
            )

        result = self.fallback.install(source_dir, target_dir)
        return replace(result, symlink_failed=True)


def create_strategy(mode: str) -> InstallStrategy:
    """Strategy for a requested install mode."""
    if mode == "copy":
        return CopyInstaller()
    if mode == "symlink":
        return FallbackInstaller(SymlinkInstaller(), CopyInstaller())
    raise ValueError(f"Unknown install mode '{mode}'; expected one of {MODES}")
