"""
Agent registry and detection.

Each supported agent has a project-scope skills directory (relative to a
workspace root), an optional global skills directory, and a cheap local
detection check. One agent is flagged universal: its project directory
``.agents/skills`` is shared by convention across agents.
"""

import logging
import shutil
from collections.abc import Callable, Iterable
from pathlib import Path

from pydantic import BaseModel

from ..config.loader import AgentDeployConfig
from ..errors import AgentDeployErrorCode, SkillInstallError

logger = logging.getLogger(__name__)

UNIVERSAL_SKILLS_DIR = ".agents/skills"
GLOBAL_CANONICAL_DIR = "~/.agents/skills"

SCOPES = ("project", "global")


class AgentDefinition(BaseModel):
    """One supported agent ecosystem."""

    id: str
    display_name: str
    skills_dir: str
    global_skills_dir: str | None = None
    binaries: tuple[str, ...] = ()
    config_dirs: tuple[str, ...] = ()
    universal: bool = False

    class Config:
        frozen = True

    @property
    def supports_global(self) -> bool:
        return self.global_skills_dir is not None


DEFAULT_AGENTS = (
    AgentDefinition(
        id="amp",
        display_name="Amp",
        skills_dir=UNIVERSAL_SKILLS_DIR,
        global_skills_dir="~/.config/agents/skills",
        binaries=("amp",),
        config_dirs=("~/.config/amp",),
        universal=True,
    ),
    AgentDefinition(
        id="claude-code",
        display_name="Claude Code",
        skills_dir=".claude/skills",
        global_skills_dir="~/.claude/skills",
        binaries=("claude",),
        config_dirs=("~/.claude",),
    ),
    AgentDefinition(
        id="codex",
        display_name="Codex",
        skills_dir=".codex/skills",
        global_skills_dir="~/.codex/skills",
        binaries=("codex",),
        config_dirs=("~/.codex",),
    ),
    AgentDefinition(
        id="cursor",
        display_name="Cursor",
        skills_dir=".cursor/skills",
        global_skills_dir="~/.cursor/skills",
        binaries=("cursor",),
        config_dirs=("~/.cursor",),
    ),
    AgentDefinition(
        id="gemini-cli",
        display_name="Gemini CLI",
        skills_dir=".gemini/skills",
        global_skills_dir="~/.gemini/skills",
        binaries=("gemini",),
        config_dirs=("~/.gemini",),
    ),
    AgentDefinition(
        id="github-copilot",
        display_name="GitHub Copilot",
        skills_dir=".github/skills",
        global_skills_dir="~/.copilot/skills",
        config_dirs=("~/.copilot",),
    ),
    AgentDefinition(
        id="opencode",
        display_name="OpenCode",
        skills_dir=".opencode/skills",
        global_skills_dir="~/.config/opencode/skills",
        binaries=("opencode",),
        config_dirs=("~/.config/opencode",),
    ),
    AgentDefinition(
        id="windsurf",
        display_name="Windsurf",
        skills_dir=".windsurf/skills",
        global_skills_dir="~/.codeium/windsurf/skills",
        config_dirs=("~/.codeium/windsurf",),
    ),
    AgentDefinition(
        id="goose",
        display_name="Goose",
        skills_dir=".goose/skills",
        global_skills_dir="~/.config/goose/skills",
        binaries=("goose",),
        config_dirs=("~/.config/goose",),
    ),
    AgentDefinition(
        id="trae",
        display_name="Trae",
        skills_dir=".trae/skills",
        config_dirs=("~/.trae",),
    ),
)


class AgentRegistry:
    """Lookup, path resolution and detection over agent definitions."""

    def __init__(
        self,
        agents: Iterable[AgentDefinition] = DEFAULT_AGENTS,
        home: str | Path | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        """
        Initialize agent registry.

        Args:
            agents: Agent definitions, in display order
            home: Home directory used to expand ``~`` (defaults to the user's)
            which: PATH lookup used for binary detection
        """
        self._agents = {agent.id: agent for agent in agents}
        self.home = Path(home) if home else Path.home()
        self._which = which

    @classmethod
    def from_config(
        cls, config: AgentDeployConfig, home: str | Path | None = None
    ) -> "AgentRegistry":
        """Build a registry from the defaults plus ``[agents.<id>]`` overrides."""
        agents = {agent.id: agent for agent in DEFAULT_AGENTS}
        for agent_id, override in config.agents.items():
            changes = {
                key: tuple(value) if isinstance(value, list) else value
                for key, value in override.model_dump(exclude_none=True).items()
                if key in AgentDefinition.model_fields
            }
            if agent_id in agents:
                agents[agent_id] = agents[agent_id].model_copy(update=changes)
            elif "skills_dir" in changes:
                changes.setdefault("display_name", agent_id)
                agents[agent_id] = AgentDefinition(id=agent_id, **changes)
            else:
                logger.warning(f"Ignoring agent '{agent_id}' without skills_dir")
        return cls(agents.values(), home=home)

    def expand(self, path: str) -> Path:
        """Expand a home-relative path against the registry's home."""
        if path == "~":
            return self.home
        if path.startswith("~/"):
            return self.home / path[2:]
        return Path(path)

    def get(self, agent_id: str) -> AgentDefinition | None:
        return self._agents.get(agent_id)

    @property
    def ids(self) -> list[str]:
        return list(self._agents)

    def all(self) -> list[AgentDefinition]:
        return list(self._agents.values())

    def invalid_ids(self, agent_ids: Iterable[str]) -> list[str]:
        return [a for a in agent_ids if a not in self._agents]

    def is_universal(self, agent_id: str) -> bool:
        agent = self.get(agent_id)
        return bool(agent and agent.universal)

    def resolve_dir(
        self,
        agent: AgentDefinition,
        scope: str,
        workspace: str | Path | None = None,
    ) -> Path:
        """
        Resolve an agent's skills directory for a scope.

        Raises:
            SkillInstallError: If project scope lacks a workspace root or the
                agent has no global directory
        """
        if scope == "project":
            if workspace is None:
                raise SkillInstallError(
                    "Project scope requires a workspace root",
                    hint="Open a workspace or choose the global scope.",
                )
            return Path(workspace) / agent.skills_dir

        if scope == "global":
            if agent.global_skills_dir is None:
                raise SkillInstallError(
                    f"{agent.display_name} does not support global skills",
                    AgentDeployErrorCode.INSTALL_FAILED,
                    hint="Choose the project scope for this agent.",
                    agent=agent.id,
                )
            return self.expand(agent.global_skills_dir)

        raise SkillInstallError(f"Unknown scope '{scope}'", hint="Use 'project' or 'global'.")

    def canonical_root(self, scope: str, workspace: str | Path | None = None) -> Path:
        """Directory holding the canonical copy of installed skills."""
        if scope == "project":
            if workspace is None:
                raise SkillInstallError(
                    "Project scope requires a workspace root",
                    hint="Open a workspace or choose the global scope.",
                )
            return Path(workspace) / UNIVERSAL_SKILLS_DIR
        return self.expand(GLOBAL_CANONICAL_DIR)

    def is_installed(self, agent: AgentDefinition) -> bool:
        """Search PATH for the agent's binaries and the home for its config dirs."""
        if any(self._which(binary) for binary in agent.binaries):
            return True
        return any(self.expand(d).exists() for d in agent.config_dirs)

    def detect(self) -> list[AgentDefinition]:
        """Agents detected on this machine, recomputed on every call."""
        detected = [agent for agent in self._agents.values() if self.is_installed(agent)]
        logger.debug(f"Detected agents: {[a.id for a in detected]}")
        return detected
