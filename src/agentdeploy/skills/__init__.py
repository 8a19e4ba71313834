"""
Skill deployment for agentdeploy.

This package resolves skill sources, discovers skills in them, and installs
or removes them across the skill directories of supported agents.
"""

from .agents import AgentDefinition, AgentRegistry
from .installer import BatchResult, InstallRecord, MultiAgentInstaller
from .inventory import InstalledSkillRecord

__all__ = [
    "AgentDefinition",
    "AgentRegistry",
    "BatchResult",
    "InstallRecord",
    "InstalledSkillRecord",
    "MultiAgentInstaller",
]
