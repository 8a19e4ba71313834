"""
agentdeploy - compile and deploy MCP servers and agent skills.

Turns MCP registry descriptors into install commands for an editor or an
agent CLI, and installs skills from git or local sources into the skill
directories of several coding agents at once.
"""

__version__ = "0.1.0"

from .errors import AgentDeployError, AgentDeployErrorCode

__all__ = ["AgentDeployError", "AgentDeployErrorCode"]
