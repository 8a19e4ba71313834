"""
Installed skill inventory.

There is no persisted index: the inventory is derived by scanning each
agent's skills directory at query time.
"""

import logging
import os
import re
from pathlib import Path

from pydantic import BaseModel, Field

from ..errors import AgentDeployError
from .agents import AgentRegistry
from .discovery import SKILL_FILE, read_skill
from .policy import AGENT_SELECT, decide_uninstall_policy

logger = logging.getLogger(__name__)


def skill_dir_name(name: str) -> str:
    """Directory name used for a skill inside agent directories."""
    sanitized = re.sub(r"[^a-z0-9._-]+", "-", name.strip().lower()).strip("-.")
    return sanitized or "unnamed-skill"


class InstalledSkillRecord(BaseModel):
    """A skill present in one or more agent directories."""

    name: str
    description: str = ""
    path: str
    canonical_path: str
    scope: str
    agents: list[str] = Field(default_factory=list)
    uninstall_policy: str = AGENT_SELECT
    uninstall_policy_reason: str | None = None


def _skill_entries(directory: Path) -> list[Path]:
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return []
    return [e for e in entries if e.is_dir() and (e / SKILL_FILE).is_file()]


def scan_scope(
    scope: str,
    registry: AgentRegistry,
    workspace: str | Path | None = None,
) -> list[InstalledSkillRecord]:
    """Scan every agent directory of one scope."""
    found: dict[str, dict] = {}

    for agent in registry.all():
        try:
            directory = registry.resolve_dir(agent, scope, workspace)
        except AgentDeployError:
            continue

        for entry in _skill_entries(directory):
            record = found.get(entry.name)
            if record is None:
                manifest = read_skill(entry, directory)
                record = found[entry.name] = {
                    "name": manifest.name if manifest else entry.name,
                    "description": manifest.description if manifest else "",
                    "path": str(entry),
                    "canonical_path": os.path.realpath(entry),
                    "scope": scope,
                    "agents": [],
                }
            record["agents"].append(agent.id)

    records = []
    for data in found.values():
        policy = decide_uninstall_policy(scope, data["agents"], registry, workspace)
        records.append(
            InstalledSkillRecord(
                **data,
                uninstall_policy=policy.policy,
                uninstall_policy_reason=policy.reason,
            )
        )
    return records


def list_installed_skills(
    registry: AgentRegistry,
    workspace: str | Path | None = None,
) -> list[InstalledSkillRecord]:
    """
    List installed skills in the project scope (when a workspace is given)
    and the global scope.
    """
    records: list[InstalledSkillRecord] = []
    if workspace is not None:
        records.extend(scan_scope("project", registry, workspace))
    records.extend(scan_scope("global", registry))
    logger.debug(f"Found {len(records)} installed skills")
    return records


def find_installed_skill(
    name: str,
    scope: str,
    registry: AgentRegistry,
    workspace: str | Path | None = None,
) -> InstalledSkillRecord | None:
    """Match by manifest name or by the directory name the skill installs under."""
    dir_name = skill_dir_name(name)
    for record in scan_scope(scope, registry, workspace):
        if record.name == name or Path(record.path).name == dir_name:
            return record
    return None
