"""
agentdeploy error types and codes.

This module defines the error taxonomy shared by the descriptor compiler,
the target adapters and the skill deployment engine. Every error carries an
optional ``hint`` describing the next step a user can take.
"""

from enum import IntEnum
from typing import Any


class AgentDeployErrorCode(IntEnum):
    """agentdeploy error codes grouped by subsystem."""

    INTERNAL_ERROR = 1

    # Descriptor errors (1xxx)
    DESCRIPTOR_ERROR = 1000
    DESCRIPTOR_INCOMPLETE = 1001
    PAYLOAD_INVALID = 1002

    # Transport errors (2xxx)
    UNSUPPORTED_TRANSPORT = 2000
    UNSUPPORTED_REGISTRY_TYPE = 2001
    UNSUPPORTED_HEADER_SHAPE = 2002

    # Input errors (3xxx)
    PLACEHOLDER_RESOLUTION_FAILED = 3000
    INPUT_CANCELED = 3001

    # Target CLI errors (4xxx)
    CLI_UNAVAILABLE = 4000
    CLI_COMMAND_FAILED = 4001
    CLI_TIMEOUT = 4002

    # Configuration errors (5xxx)
    CONFIGURATION_ERROR = 5000
    CONFIG_CONFLICT = 5001

    # Source errors (6xxx)
    SOURCE_RESOLUTION_FAILED = 6000
    SOURCE_NOT_FOUND = 6001
    UNSUPPORTED_SOURCE = 6002
    CLONE_FAILED = 6003

    # Install errors (7xxx)
    INSTALL_FAILED = 7000
    PARTIAL_BATCH_FAILURE = 7001
    UNINSTALL_POLICY_VIOLATION = 7002
    NO_SKILLS_FOUND = 7003
    INVALID_AGENTS = 7004


class AgentDeployError(Exception):
    """Base exception for agentdeploy errors."""

    def __init__(
        self,
        code: AgentDeployErrorCode,
        message: str,
        data: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        """
        Initialize agentdeploy error.

        Args:
            code: Error code from AgentDeployErrorCode enum
            message: Human-readable error message
            data: Additional error data (optional)
            hint: Actionable next step for the user (optional)
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data or {}
        self.hint = hint

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to a JSON-serializable dictionary.

        Returns:
            Dictionary with code, message, data and hint
        """
        return {
            "code": int(self.code),
            "message": self.message,
            "data": self.data,
            "hint": self.hint,
        }

    def __repr__(self) -> str:
        """String representation of error."""
        return f"{type(self).__name__}({self.code}, {self.message!r}, data={self.data})"


class DescriptorError(AgentDeployError):
    """Malformed or incomplete descriptor."""

    def __init__(
        self,
        message: str,
        code: AgentDeployErrorCode = AgentDeployErrorCode.DESCRIPTOR_ERROR,
        hint: str | None = "Choose a different package or remote for this server.",
        **kwargs: Any,
    ) -> None:
        super().__init__(code, message, kwargs, hint)


class UnsupportedTransportError(AgentDeployError):
    """Registry type, remote kind or header shape is not supported."""

    def __init__(
        self,
        message: str,
        code: AgentDeployErrorCode = AgentDeployErrorCode.UNSUPPORTED_TRANSPORT,
        hint: str | None = "Install through a different target or pick another package.",
        **kwargs: Any,
    ) -> None:
        super().__init__(code, message, kwargs, hint)


class PlaceholderResolutionError(AgentDeployError):
    """Required inputs were not collected before execution."""

    def __init__(self, message: str, missing: list[str] | None = None, **kwargs: Any) -> None:
        kwargs["missing"] = missing or []
        super().__init__(
            AgentDeployErrorCode.PLACEHOLDER_RESOLUTION_FAILED,
            message,
            kwargs,
            "Retry the install and provide every requested value.",
        )
        self.missing = missing or []


class CliUnavailableError(AgentDeployError):
    """Target binary could not be located."""

    def __init__(
        self, binary: str, manual_command: str | None = None, **kwargs: Any
    ) -> None:
        kwargs.update({"binary": binary, "manual_command": manual_command})
        super().__init__(
            AgentDeployErrorCode.CLI_UNAVAILABLE,
            f"'{binary}' CLI was not found on this machine",
            kwargs,
            "Install the CLI or copy the manual command and run it yourself.",
        )
        self.binary = binary
        self.manual_command = manual_command


class CliCommandError(AgentDeployError):
    """Target binary exited with a failure status."""

    def __init__(
        self,
        message: str,
        code: AgentDeployErrorCode = AgentDeployErrorCode.CLI_COMMAND_FAILED,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            code, message, kwargs, "Copy the manual command and run it yourself."
        )


class ConfigurationError(AgentDeployError):
    """Configuration-related errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(
            AgentDeployErrorCode.CONFIGURATION_ERROR,
            message,
            kwargs,
            "Fix the configuration file and run 'agentdeploy config validate'.",
        )


class ConfigConflictError(AgentDeployError):
    """Editor config store changed between read and write."""

    def __init__(self, path: str, **kwargs: Any) -> None:
        kwargs["path"] = path
        super().__init__(
            AgentDeployErrorCode.CONFIG_CONFLICT,
            f"Configuration at {path} was modified by another process",
            kwargs,
            "Retry the operation; the latest configuration will be re-read.",
        )


class SourceResolutionError(AgentDeployError):
    """Skill source could not be resolved to a local directory."""

    def __init__(
        self,
        message: str,
        code: AgentDeployErrorCode = AgentDeployErrorCode.SOURCE_RESOLUTION_FAILED,
        hint: str | None = "Check the source path or repository URL and retry.",
        **kwargs: Any,
    ) -> None:
        super().__init__(code, message, kwargs, hint)


class SkillInstallError(AgentDeployError):
    """Skill install or uninstall errors."""

    def __init__(
        self,
        message: str,
        code: AgentDeployErrorCode = AgentDeployErrorCode.INSTALL_FAILED,
        hint: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(code, message, kwargs, hint)


class UninstallPolicyError(SkillInstallError):
    """Selected agents violate an all-agents uninstall policy."""

    def __init__(self, skill_name: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            f"Skill '{skill_name}' cannot be removed from a subset of agents: {reason}",
            AgentDeployErrorCode.UNINSTALL_POLICY_VIOLATION,
            "Select every listed agent to remove this skill.",
            skill=skill_name,
            reason=reason,
            **kwargs,
        )


class PartialBatchFailure(SkillInstallError):
    """Mixed batch result: some pairs succeeded and some failed.

    Built by callers to report a batch; the installer itself returns a
    result object and never raises this.
    """

    def __init__(self, installed: list[Any], failed: list[Any]) -> None:
        super().__init__(
            f"{len(failed)} of {len(installed) + len(failed)} installs failed",
            AgentDeployErrorCode.PARTIAL_BATCH_FAILURE,
            "Retry the failed agents or choose a different scope.",
            installed=len(installed),
            failed=len(failed),
        )
        self.installed = installed
        self.failed = failed


def is_retryable_error(error: Exception) -> bool:
    """
    Check if an error is retryable.

    Args:
        error: Exception to check

    Returns:
        True if error is retryable, False otherwise
    """
    if isinstance(error, AgentDeployError):
        retryable_codes = {
            AgentDeployErrorCode.CLONE_FAILED,
            AgentDeployErrorCode.CONFIG_CONFLICT,
            AgentDeployErrorCode.CLI_TIMEOUT,
            AgentDeployErrorCode.PARTIAL_BATCH_FAILURE,
        }
        return error.code in retryable_codes

    retryable_types = (
        ConnectionError,
        TimeoutError,
    )
    return isinstance(error, retryable_types)
