"""
Multi-agent skill installer.

Installs every selected skill into every selected agent directory. Each
(skill, agent) pair is attempted independently: a failing pair is recorded
and the batch carries on, so callers always get a result object with the
installed and failed records separated.

In symlink mode a skill is first materialized into the canonical directory
(``.agents/skills/<name>`` under the workspace, or ``~/.agents/skills/<name>``
globally) and each agent entry is then linked to it, falling back to a copy
where the filesystem refuses symlinks. Copy mode copies straight into each
agent directory.
"""

import asyncio
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from ..config.loader import SkillsConfig
from ..errors import (
    AgentDeployError,
    AgentDeployErrorCode,
    PartialBatchFailure,
    SkillInstallError,
    UninstallPolicyError,
)
from .agents import AgentRegistry
from .discovery import SkillManifest, discover_skills, filter_skills
from .inventory import (
    InstalledSkillRecord,
    find_installed_skill,
    list_installed_skills,
    skill_dir_name,
)
from .policy import DEFAULT_ALL_AGENTS_REASON, decide_uninstall_policy
from .source import resolved_source
from .strategies import CopyInstaller, create_strategy, remove_path, same_location

logger = logging.getLogger(__name__)

ALL = "*"


@dataclass
class InstallRecord:
    """Outcome of one (skill, agent) pair."""

    skill_name: str
    agent: str
    success: bool
    path: str
    mode: str
    canonical_path: str | None = None
    symlink_failed: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BatchResult:
    """Aggregate of a batch of (skill, agent) pairs."""

    installed: list[InstallRecord] = field(default_factory=list)
    failed: list[InstallRecord] = field(default_factory=list)
    source: str | None = None
    selected_skills: list[str] = field(default_factory=list)
    target_agents: list[str] = field(default_factory=list)

    def add(self, record: InstallRecord) -> None:
        (self.installed if record.success else self.failed).append(record)

    @property
    def status(self) -> str:
        if self.failed and self.installed:
            return "partial"
        if self.failed:
            return "failed"
        return "success"

    def partial_failure(self) -> PartialBatchFailure | None:
        """Error describing a mixed batch, or None when the batch is uniform."""
        if self.installed and self.failed:
            return PartialBatchFailure(self.installed, self.failed)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "source": self.source,
            "selected_skills": self.selected_skills,
            "target_agents": self.target_agents,
            "installed": [r.to_dict() for r in self.installed],
            "failed": [r.to_dict() for r in self.failed],
        }


class MultiAgentInstaller:
    """Install, list and remove skills across agent directories."""

    def __init__(
        self,
        registry: AgentRegistry | None = None,
        config: SkillsConfig | None = None,
        temp_root: str | Path | None = None,
    ) -> None:
        """
        Initialize installer.

        Args:
            registry: Agent registry (defaults to the built-in agents)
            config: Skill settings (scope, mode, depth, clone options)
            temp_root: Parent directory for temporary clones
        """
        self.registry = registry or AgentRegistry()
        self.config = config or SkillsConfig()
        self.temp_root = temp_root

    def detect_installed_agents(self) -> list[str]:
        return [agent.id for agent in self.registry.detect()]

    async def install_skills(
        self,
        skills: Iterable[SkillManifest],
        agents: Iterable[str],
        scope: str = "project",
        workspace: str | Path | None = None,
        mode: str = "symlink",
    ) -> BatchResult:
        """
        Install skills into agent directories.

        Never raises for a single pair; failures are returned in
        ``BatchResult.failed``.
        """
        skills = list(skills)
        agents = list(agents)
        result = BatchResult(
            selected_skills=[s.name for s in skills], target_agents=agents
        )
        logger.info(
            f"Installing {len(skills)} skills to {len(agents)} agents ({scope}, {mode})"
        )

        for skill in skills:
            name = skill_dir_name(skill.name)
            source_dir, canonical, created, error = skill.directory, None, False, None

            if mode == "symlink":
                try:
                    canonical = self.registry.canonical_root(scope, workspace) / name
                    created = not (canonical.exists() or canonical.is_symlink())
                    await asyncio.to_thread(CopyInstaller().install, skill.directory, canonical)
                    source_dir = canonical
                except (OSError, AgentDeployError) as e:
                    error = _describe(e)
                    logger.warning(f"Cannot materialize {skill.name}: {error}")

            records = []
            for agent_id in agents:
                if error is not None:
                    record = self._failed(skill.name, agent_id, mode, error, canonical)
                else:
                    record = await asyncio.to_thread(
                        self._install_pair, skill.name, source_dir, agent_id, scope, workspace, mode
                    )
                records.append(record)
                result.add(record)

            if created and canonical is not None and not any(r.success for r in records):
                self._remove_quietly(canonical)

        logger.info(
            f"Install batch finished: {len(result.installed)} installed, "
            f"{len(result.failed)} failed"
        )
        return result

    def _install_pair(
        self,
        skill_name: str,
        source_dir: Path,
        agent_id: str,
        scope: str,
        workspace: str | Path | None,
        mode: str,
    ) -> InstallRecord:
        agent = self.registry.get(agent_id)
        if agent is None:
            return self._failed(skill_name, agent_id, mode, f"Unknown agent '{agent_id}'")

        target = None
        try:
            target = self.registry.resolve_dir(agent, scope, workspace) / skill_dir_name(skill_name)
            placed = create_strategy(mode).install(source_dir, target)
        except (OSError, ValueError, AgentDeployError) as e:
            logger.warning(f"Failed to install {skill_name} for {agent_id}: {_describe(e)}")
            return self._failed(
                skill_name, agent_id, mode, _describe(e), str(target) if target else ""
            )

        return InstallRecord(
            skill_name=skill_name,
            agent=agent_id,
            success=True,
            path=str(placed.path),
            mode=placed.mode,
            canonical_path=os.path.realpath(placed.path),
            symlink_failed=placed.symlink_failed,
        )

    async def uninstall_skills(
        self,
        names: Iterable[str],
        agents: Iterable[str],
        scope: str = "project",
        workspace: str | Path | None = None,
    ) -> BatchResult:
        """
        Remove skills from agent directories, one independent attempt per pair.

        Canonical directories that no agent entry references afterwards are
        removed as well.
        """
        names = list(names)
        agents = list(agents)
        result = BatchResult(selected_skills=names, target_agents=agents)
        removed: set[str] = set()

        for name in names:
            for agent_id in agents:
                record = await asyncio.to_thread(
                    self._uninstall_pair, name, agent_id, scope, workspace, removed
                )
                result.add(record)
            await asyncio.to_thread(self.prune_canonical, name, scope, workspace)

        logger.info(
            f"Uninstall batch finished: {len(result.installed)} removed, "
            f"{len(result.failed)} failed"
        )
        return result

    def _uninstall_pair(
        self,
        name: str,
        agent_id: str,
        scope: str,
        workspace: str | Path | None,
        removed: set[str],
    ) -> InstallRecord:
        agent = self.registry.get(agent_id)
        if agent is None:
            return self._failed(name, agent_id, "remove", f"Unknown agent '{agent_id}'")

        target = None
        try:
            target = self.registry.resolve_dir(agent, scope, workspace) / skill_dir_name(name)
            key = os.path.join(os.path.realpath(target.parent), target.name)

            if key not in removed:
                if not remove_path(target):
                    return self._failed(
                        name, agent_id, "remove", f"Skill '{name}' is not installed for {agent_id}",
                        str(target),
                    )
                removed.add(key)
        except (OSError, AgentDeployError) as e:
            logger.warning(f"Failed to remove {name} for {agent_id}: {_describe(e)}")
            return self._failed(
                name, agent_id, "remove", _describe(e), str(target) if target else ""
            )

        logger.debug(f"Removed {target}")
        return InstallRecord(
            skill_name=name, agent=agent_id, success=True, path=str(target), mode="remove"
        )

    def prune_canonical(
        self, name: str, scope: str, workspace: str | Path | None = None
    ) -> bool:
        """Remove a canonical skill directory no agent entry links to."""
        try:
            root = self.registry.canonical_root(scope, workspace)
        except AgentDeployError:
            return False

        canonical = root / skill_dir_name(name)
        if canonical.is_symlink() or not canonical.is_dir():
            return False

        for agent in self.registry.all():
            try:
                directory = self.registry.resolve_dir(agent, scope, workspace)
            except AgentDeployError:
                continue
            if same_location(directory, root):
                continue
            entry = directory / canonical.name
            if entry.exists() and same_location(entry, canonical):
                return False

        self._remove_quietly(canonical)
        return True

    async def list_skills_from_source(
        self,
        source: str,
        include_internal: bool = False,
        full_depth: bool | None = None,
        cwd: str | Path | None = None,
    ) -> list[SkillManifest]:
        """Resolve a source, discover its skills and clean up the clone."""
        async with self._resolve(source, cwd) as resolved:
            return discover_skills(
                resolved.base_dir,
                resolved.subpath,
                include_internal=include_internal,
                full_depth=self.config.full_depth if full_depth is None else full_depth,
                max_depth=self.config.max_depth,
            )

    async def add_skills_from_source(
        self,
        source: str,
        skill_names: list[str] | None = None,
        agents: list[str] | None = None,
        scope: str | None = None,
        mode: str | None = None,
        full_depth: bool | None = None,
        workspace: str | Path | None = None,
        include_internal: bool | None = None,
    ) -> BatchResult:
        """
        Install skills from a source into agents.

        Without ``skill_names`` (or with ``*``) every discovered skill is
        installed. Without ``agents`` the detected agents are used, falling
        back to every known agent; ``*`` selects every agent.

        Raises:
            SourceResolutionError: If the source cannot be resolved
            SkillInstallError: If no skills match or an agent id is invalid
        """
        requested = [n for n in (skill_names or []) if n.strip()]
        if include_internal is None:
            include_internal = bool(requested)
        scope = scope or self.config.default_scope
        mode = mode or self.config.mode
        if scope == "project" and workspace is None:
            workspace = Path.cwd()

        target_agents = self._select_agents(agents)

        async with self._resolve(source, workspace) as resolved:
            discovered = discover_skills(
                resolved.base_dir,
                resolved.subpath,
                include_internal=include_internal,
                full_depth=self.config.full_depth if full_depth is None else full_depth,
                max_depth=self.config.max_depth,
            )
            if not discovered:
                raise SkillInstallError(
                    "No valid skills found in source.",
                    AgentDeployErrorCode.NO_SKILLS_FOUND,
                    hint="Check the source path, or retry with --full-depth.",
                )

            if not requested or ALL in requested:
                selected = discovered
            else:
                selected = filter_skills(discovered, requested)
            if not selected:
                raise SkillInstallError(
                    f"No matching skills found for: {', '.join(requested)}",
                    AgentDeployErrorCode.NO_SKILLS_FOUND,
                    hint="Run 'agentdeploy skills list' on the source to see available names.",
                )

            result = await self.install_skills(selected, target_agents, scope, workspace, mode)

        result.source = source
        return result

    async def install_skill_from_search_result(
        self, selected: Mapping[str, Any], **options: Any
    ) -> BatchResult:
        """Install one skill picked from a search listing (``id``, ``name``, ``source``)."""
        package = str(selected.get("source") or "").strip() or str(selected.get("id") or "").strip()
        if not package:
            raise SkillInstallError(
                "Selected skill is missing both source and id",
                AgentDeployErrorCode.NO_SKILLS_FOUND,
            )
        return await self.add_skills_from_source(
            package, skill_names=[str(selected.get("name", ""))], **options
        )

    def list_installed_skills(
        self, workspace: str | Path | None = None
    ) -> list[InstalledSkillRecord]:
        return list_installed_skills(self.registry, workspace)

    async def uninstall_skill(
        self,
        name: str,
        scope: str | None = None,
        agents: list[str] | None = None,
        workspace: str | Path | None = None,
    ) -> BatchResult:
        """
        Remove an installed skill from some or all of its agents.

        The uninstall policy is recomputed from the current filesystem.

        Raises:
            SkillInstallError: If the skill is not installed, or an agent
                does not hold it
            UninstallPolicyError: If the policy is ``all-agents`` and only
                some of the holding agents were selected
        """
        scope = scope or self.config.default_scope
        if scope == "project" and workspace is None:
            workspace = Path.cwd()

        record = find_installed_skill(name, scope, self.registry, workspace)
        if record is None:
            raise SkillInstallError(
                f"Skill '{name}' is not installed in {scope} scope",
                AgentDeployErrorCode.INSTALL_FAILED,
                hint="Run 'agentdeploy skills installed' to see installed skills.",
            )

        selected = list(dict.fromkeys(agents)) if agents else list(record.agents)
        missing = [a for a in selected if a not in record.agents]
        if missing:
            raise SkillInstallError(
                f"Skill '{name}' is not installed for: {', '.join(missing)}",
                AgentDeployErrorCode.INVALID_AGENTS,
                hint=f"Installed for: {', '.join(record.agents)}",
            )

        policy = decide_uninstall_policy(scope, record.agents, self.registry, workspace)
        if policy.is_all_agents and set(selected) != set(record.agents):
            raise UninstallPolicyError(name, policy.reason or DEFAULT_ALL_AGENTS_REASON)

        return await self.uninstall_skills([record.name], selected, scope, workspace)

    def _select_agents(self, agents: list[str] | None) -> list[str]:
        if agents and ALL in agents:
            return self.registry.ids
        if agents:
            invalid = self.registry.invalid_ids(agents)
            if invalid:
                raise SkillInstallError(
                    f"Invalid agents: {', '.join(invalid)}",
                    AgentDeployErrorCode.INVALID_AGENTS,
                    hint=f"Valid agents: {', '.join(self.registry.ids)}",
                )
            return list(dict.fromkeys(agents))

        detected = self.detect_installed_agents()
        return detected or self.registry.ids

    def _resolve(self, source: str, cwd: str | Path | None):
        return resolved_source(
            source,
            cwd=cwd,
            temp_prefix=self.config.temp_prefix,
            clone_timeout=self.config.clone_timeout,
            temp_root=self.temp_root,
        )

    @staticmethod
    def _failed(
        skill_name: str,
        agent_id: str,
        mode: str,
        error: str,
        path: Path | str | None = "",
    ) -> InstallRecord:
        return InstallRecord(
            skill_name=skill_name,
            agent=agent_id,
            success=False,
            path=str(path or ""),
            mode=mode,
            error=error,
        )

    @staticmethod
    def _remove_quietly(path: Path) -> None:
        try:
            remove_path(path)
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")


def _describe(error: Exception) -> str:
    if isinstance(error, AgentDeployError):
        return error.message
    return str(error)
