"""
Skill source resolution.

A source reference is either a local directory or a git repository
(optionally with a ref and a subpath). Git sources are cloned into a fresh
temporary directory that is removed when the enclosing operation finishes,
whatever the outcome.
"""

import asyncio
import logging
import re
import shutil
import sys
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

import git

from ..errors import AgentDeployErrorCode, SourceResolutionError

logger = logging.getLogger(__name__)

_GIT_URL_RE = re.compile(r"^(git@|ssh://|git://|file://)")
_SHORTHAND_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+(/[^#]*)?$")


@dataclass(frozen=True)
class SkillSource:
    """Parsed skill source reference."""

    kind: str  # "local" or "git"
    location: str
    ref: str | None = None
    subpath: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind,
            "location": self.location,
            "ref": self.ref,
            "subpath": self.subpath,
        }


@dataclass(frozen=True)
class ResolvedSource:
    """Local directory a source resolved to."""

    source: SkillSource
    base_dir: Path
    subpath: str | None = None
    temp_dir: Path | None = None

    @property
    def search_dir(self) -> Path:
        return self.base_dir / self.subpath if self.subpath else self.base_dir


def _clean_subpath(subpath: str | None) -> str | None:
    if not subpath:
        return None
    parts = [p for p in PurePosixPath(subpath.strip("/")).parts if p not in ("", ".")]
    if any(p == ".." for p in parts):
        raise SourceResolutionError(
            f"Subpath escapes the repository: {subpath}",
            AgentDeployErrorCode.UNSUPPORTED_SOURCE,
        )
    return "/".join(parts) or None


def _split_ref(reference: str) -> tuple[str, str | None]:
    if "#" in reference:
        reference, ref = reference.rsplit("#", 1)
        return reference, ref or None
    return reference, None


def _parse_hosted_url(url: str, ref: str | None) -> SkillSource | None:
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    parts = [p for p in parsed.path.strip("/").split("/") if p]

    if host in ("github.com", "www.github.com") and len(parts) >= 2:
        owner, repo = parts[0], parts[1].removesuffix(".git")
        subpath = None
        if len(parts) >= 4 and parts[2] in ("tree", "blob"):
            ref = parts[3]
            subpath = "/".join(parts[4:])
            if subpath.endswith(".md"):
                return None
        elif len(parts) > 2:
            return None
        return SkillSource(
            "git", f"https://github.com/{owner}/{repo}.git", ref, _clean_subpath(subpath)
        )

    if host in ("gitlab.com", "www.gitlab.com") and len(parts) >= 2:
        if "-" in parts:
            marker = parts.index("-")
            project = parts[:marker]
            rest = parts[marker + 1:]
            subpath = None
            if len(rest) >= 2 and rest[0] in ("tree", "blob"):
                ref = rest[1]
                subpath = "/".join(rest[2:])
                if subpath.endswith(".md"):
                    return None
        else:
            project, subpath = parts, None
        project_path = "/".join(project).removesuffix(".git")
        return SkillSource(
            "git", f"https://gitlab.com/{project_path}.git", ref, _clean_subpath(subpath)
        )

    if parsed.path.endswith(".git"):
        return SkillSource("git", url, ref)
    return None


def parse_source(reference: str, cwd: str | Path | None = None) -> SkillSource:
    """
    Parse a skill source reference.

    Accepted forms: a local directory path, ``owner/repo[/subpath]``
    GitHub shorthand, GitHub/GitLab ``tree/<ref>/<path>`` URLs, and plain
    git URLs (``https://...git``, ``git@...``, ``ssh://``, ``file://``).
    A trailing ``#<ref>`` selects a branch or tag.

    Args:
        reference: Source reference string
        cwd: Directory relative local paths are resolved against

    Returns:
        Parsed source

    Raises:
        SourceResolutionError: If the reference is empty, unsupported, or a
            local path that does not exist
    """
    reference = (reference or "").strip()
    if not reference:
        raise SourceResolutionError("Empty skill source", AgentDeployErrorCode.UNSUPPORTED_SOURCE)

    base = Path(cwd) if cwd else Path.cwd()

    if _GIT_URL_RE.match(reference):
        url, ref = _split_ref(reference)
        return SkillSource("git", url, ref)

    if reference.startswith(("http://", "https://")):
        url, ref = _split_ref(reference)
        source = _parse_hosted_url(url, ref)
        if source is None:
            raise SourceResolutionError(
                f"Unsupported source type: {reference}",
                AgentDeployErrorCode.UNSUPPORTED_SOURCE,
                hint="Use a git repository URL, an owner/repo shorthand or a local path.",
            )
        return source

    candidate = (base / Path(reference).expanduser()).resolve()
    looks_local = reference.startswith(("/", "./", "../", "~", ".")) or candidate.exists()
    if looks_local:
        if not candidate.is_dir():
            raise SourceResolutionError(
                f"Local source does not exist or is not a directory: {candidate}",
                AgentDeployErrorCode.SOURCE_NOT_FOUND,
            )
        return SkillSource("local", str(candidate))

    shorthand, ref = _split_ref(reference)
    if _SHORTHAND_RE.match(shorthand):
        owner, repo, *rest = shorthand.split("/")
        return SkillSource(
            "git",
            f"https://github.com/{owner}/{repo.removesuffix('.git')}.git",
            ref,
            _clean_subpath("/".join(rest)),
        )

    raise SourceResolutionError(
        f"Unsupported source type: {reference}",
        AgentDeployErrorCode.UNSUPPORTED_SOURCE,
        hint="Use a git repository URL, an owner/repo shorthand or a local path.",
    )


def _clone(url: str, target: Path, ref: str | None) -> None:
    options = {"depth": 1}
    if ref:
        options["branch"] = ref
    git.Repo.clone_from(url, target, **options)


async def resolve_source(
    source: SkillSource,
    temp_prefix: str = "agentdeploy-skills-",
    clone_timeout: float = 120,
    temp_root: str | Path | None = None,
) -> ResolvedSource:
    """
    Resolve a parsed source to a local directory.

    Git sources are cloned into a new temporary directory; on failure the
    directory is removed before the error propagates. On success the caller
    owns the directory and must pass the result to ``cleanup_source``.

    Raises:
        SourceResolutionError: If the clone fails or the subpath is missing
    """
    if source.kind == "local":
        resolved = ResolvedSource(source, Path(source.location), source.subpath)
        _check_search_dir(resolved)
        return resolved

    temp_dir = Path(tempfile.mkdtemp(prefix=temp_prefix, dir=temp_root))
    resolved = ResolvedSource(source, temp_dir / "repo", source.subpath, temp_dir)

    clone = asyncio.ensure_future(
        asyncio.to_thread(_clone, source.location, resolved.base_dir, source.ref)
    )
    try:
        logger.info(f"Cloning skill source: {source.location}")
        done, _ = await asyncio.wait({clone}, timeout=clone_timeout)
        if not done:
            raise asyncio.TimeoutError()
        clone.result()
        _check_search_dir(resolved)
    except asyncio.TimeoutError as e:
        # The worker thread cannot be cancelled; it must finish writing before cleanup
        await _wait_for_worker(clone)
        cleanup_source(resolved)
        raise SourceResolutionError(
            f"Clone of {source.location} timed out after {clone_timeout}s",
            AgentDeployErrorCode.CLONE_FAILED,
            hint="Retry, or clone the repository yourself and use the local path.",
        ) from e
    except git.GitError as e:
        cleanup_source(resolved)
        raise SourceResolutionError(
            f"Failed to clone {source.location}: {e}",
            AgentDeployErrorCode.CLONE_FAILED,
            hint="Check the repository URL and your access to it, then retry.",
        ) from e
    except BaseException:
        if not clone.done():
            await _wait_for_worker(clone)
        cleanup_source(resolved)
        raise

    return resolved


async def _wait_for_worker(clone: asyncio.Future) -> None:
    try:
        await asyncio.shield(clone)
    except Exception as e:
        logger.debug(f"Abandoned clone finished with {type(e).__name__}: {e}")


def _check_search_dir(resolved: ResolvedSource) -> None:
    if not resolved.search_dir.is_dir():
        raise SourceResolutionError(
            f"Path '{resolved.subpath or resolved.base_dir}' not found in source",
            AgentDeployErrorCode.SOURCE_NOT_FOUND,
        )


def cleanup_source(resolved: ResolvedSource | None) -> None:
    """Remove the temporary directory of a resolved source, logging failures."""
    if resolved is None or resolved.temp_dir is None:
        return

    def log_failure(function, path, error) -> None:
        if isinstance(error, tuple):
            error = error[1]
        logger.warning(f"Failed to remove {path} during cleanup: {error}")

    try:
        if sys.version_info >= (3, 12):
            shutil.rmtree(resolved.temp_dir, onexc=log_failure)
        else:
            shutil.rmtree(resolved.temp_dir, onerror=log_failure)
        logger.debug(f"Removed temporary source directory {resolved.temp_dir}")
    except OSError as e:
        logger.warning(f"Failed to clean up {resolved.temp_dir}: {e}")


@asynccontextmanager
async def resolved_source(
    reference: str,
    cwd: str | Path | None = None,
    temp_prefix: str = "agentdeploy-skills-",
    clone_timeout: float = 120,
    temp_root: str | Path | None = None,
) -> AsyncIterator[ResolvedSource]:
    """Parse and resolve a source reference, removing any clone on exit."""
    source = parse_source(reference, cwd)
    resolved = await resolve_source(source, temp_prefix, clone_timeout, temp_root)
    try:
        yield resolved
    finally:
        cleanup_source(resolved)
