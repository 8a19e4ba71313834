"""Uninstall policy for installed skills."""

import logging
import os
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from ..errors import AgentDeployError
from .agents import UNIVERSAL_SKILLS_DIR, AgentRegistry

logger = logging.getLogger(__name__)

AGENT_SELECT = "agent-select"
ALL_AGENTS = "all-agents"

DEFAULT_ALL_AGENTS_REASON = "This skill must be removed from all listed agents at once."
UNIVERSAL_REASON = (
    f"Installed in the shared {UNIVERSAL_SKILLS_DIR} directory used by several agents; "
    "it must be removed from all of them together."
)


@dataclass(frozen=True)
class UninstallPolicy:
    policy: str
    reason: str | None = None

    @property
    def is_all_agents(self) -> bool:
        return self.policy == ALL_AGENTS


def decide_uninstall_policy(
    scope: str,
    agents: Iterable[str],
    registry: AgentRegistry,
    workspace: str | Path | None = None,
) -> UninstallPolicy:
    """
    Decide whether a skill can be removed per agent.

    Agent directories are resolved against the filesystem on every call, so
    the decision reflects the current layout rather than the one at install
    time.

    Args:
        scope: ``project`` or ``global``
        agents: Agent ids currently holding the skill
        registry: Agent registry
        workspace: Workspace root for project scope

    Returns:
        ``all-agents`` with a reason when agents share storage, else
        ``agent-select``
    """
    agent_ids = list(dict.fromkeys(agents))

    if scope == "project" and any(registry.is_universal(a) for a in agent_ids):
        return UninstallPolicy(ALL_AGENTS, UNIVERSAL_REASON)

    by_location: dict[str, list[str]] = defaultdict(list)
    for agent_id in agent_ids:
        agent = registry.get(agent_id)
        if agent is None:
            continue
        try:
            directory = registry.resolve_dir(agent, scope, workspace)
        except AgentDeployError as e:
            logger.debug(f"Skipping {agent_id} in policy check: {e.message}")
            continue
        by_location[os.path.realpath(directory)].append(agent_id)

    for location, sharing in by_location.items():
        if len(sharing) > 1:
            return UninstallPolicy(
                ALL_AGENTS,
                f"Agents {', '.join(sharing)} share the skills directory {location}; "
                "removing it for one removes it for all.",
            )

    return UninstallPolicy(AGENT_SELECT)
