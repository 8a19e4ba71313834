"""
Skill discovery within a resolved source directory.

A skill is a directory containing a ``SKILL.md`` file whose YAML
frontmatter declares at least ``name`` and ``description``.
"""

import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

SKILL_FILE = "SKILL.md"

PRIORITY_DIRS = (
    "skills",
    "skills/.curated",
    "skills/.experimental",
    "skills/.system",
    ".agents/skills",
    ".claude/skills",
    ".codex/skills",
    ".cursor/skills",
    ".github/skills",
)

SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}

INTERNAL_ENV_VAR = "INSTALL_INTERNAL_SKILLS"


class SkillManifest(BaseModel):
    """A skill found in a source."""

    name: str
    description: str
    path: str = Field(description="Skill directory relative to the source root")
    internal: bool = False
    directory: Path = Field(exclude=True)

    class Config:
        frozen = True


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split ``---`` delimited YAML frontmatter from a markdown body."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, text

    end_idx = None
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            end_idx = i
            break

    if end_idx is None:
        return {}, text

    yaml_text = "\n".join(lines[1:end_idx])
    body = "\n".join(lines[end_idx + 1:])

    try:
        data = yaml.safe_load(yaml_text) or {}
    except yaml.YAMLError as e:
        logger.debug(f"Invalid frontmatter: {e}")
        return {}, text

    if not isinstance(data, dict):
        return {}, body

    return data, body


def _is_internal(frontmatter: dict[str, Any]) -> bool:
    metadata = frontmatter.get("metadata")
    if isinstance(metadata, dict) and metadata.get("internal") is True:
        return True
    return frontmatter.get("internal") is True or frontmatter.get("hidden") is True


def read_skill(skill_dir: Path, root: Path) -> SkillManifest | None:
    """
    Read the manifest of one skill directory.

    Returns:
        The manifest, or None when SKILL.md is missing or lacks a name or
        description
    """
    skill_file = skill_dir / SKILL_FILE
    try:
        text = skill_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Cannot read {skill_file}: {e}")
        return None

    frontmatter, _ = split_frontmatter(text)
    name = frontmatter.get("name")
    description = frontmatter.get("description")
    if not isinstance(name, str) or not name.strip():
        logger.debug(f"Skipping {skill_file}: missing name")
        return None
    if not isinstance(description, str) or not description.strip():
        logger.debug(f"Skipping {skill_file}: missing description")
        return None

    try:
        relative = skill_dir.relative_to(root).as_posix()
    except ValueError:
        relative = skill_dir.as_posix()

    return SkillManifest(
        name=name.strip(),
        description=description.strip(),
        path=relative,
        internal=_is_internal(frontmatter),
        directory=skill_dir,
    )


def _child_skill_dirs(directory: Path) -> Iterable[Path]:
    try:
        children = sorted(p for p in directory.iterdir() if p.is_dir())
    except OSError:
        return []
    return [c for c in children if (c / SKILL_FILE).is_file()]


def _walk(directory: Path, max_depth: int | None, full_depth: bool) -> Iterable[Path]:
    for current, dirnames, filenames in os.walk(directory):
        current_path = Path(current)
        depth = len(current_path.relative_to(directory).parts)
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)

        if SKILL_FILE in filenames:
            yield current_path
            if not full_depth:
                dirnames[:] = []
                continue

        if max_depth is not None and depth >= max_depth:
            dirnames[:] = []


def discover_skills(
    base_dir: str | Path,
    subpath: str | None = None,
    include_internal: bool = False,
    full_depth: bool = False,
    max_depth: int = 5,
) -> list[SkillManifest]:
    """
    Discover skills under a resolved source directory.

    A ``SKILL.md`` at the search root is returned alone unless
    ``full_depth`` is set. Otherwise the conventional skill directories are
    checked first, then the tree is walked up to ``max_depth`` levels
    (unbounded with ``full_depth``). Names are unique: the first manifest
    found for a name wins.

    Args:
        base_dir: Resolved source root
        subpath: Directory within the root to search
        include_internal: Keep skills marked internal or hidden
        full_depth: Search the whole tree
        max_depth: Depth bound of the fallback walk

    Returns:
        Discovered manifests in discovery order
    """
    root = Path(base_dir)
    search_dir = root / subpath if subpath else root
    include_internal = include_internal or os.environ.get(INTERNAL_ENV_VAR, "").lower() in (
        "1",
        "true",
    )

    found: dict[str, SkillManifest] = {}

    def add(skill_dir: Path) -> None:
        manifest = read_skill(skill_dir, root)
        if manifest is None:
            return
        if manifest.internal and not include_internal:
            logger.debug(f"Skipping internal skill {manifest.name}")
            return
        if manifest.name in found:
            logger.debug(f"Duplicate skill name {manifest.name} at {manifest.path}")
            return
        found[manifest.name] = manifest

    if (search_dir / SKILL_FILE).is_file():
        add(search_dir)
        if not full_depth:
            return list(found.values())

    for priority in PRIORITY_DIRS:
        candidate = search_dir / priority
        if candidate.is_dir():
            for skill_dir in _child_skill_dirs(candidate):
                add(skill_dir)

    if not found or full_depth:
        for skill_dir in _walk(search_dir, None if full_depth else max_depth, full_depth):
            add(skill_dir)

    logger.info(f"Discovered {len(found)} skills in {search_dir}")
    return list(found.values())


def filter_skills(skills: list[SkillManifest], names: Iterable[str]) -> list[SkillManifest]:
    """Select skills by name or directory name, case-insensitively."""
    wanted = {n.strip().lower() for n in names if n.strip()}
    return [
        s
        for s in skills
        if s.name.lower() in wanted or Path(s.path).name.lower() in wanted
    ]
