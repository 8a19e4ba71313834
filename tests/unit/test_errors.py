"""
Unit tests for agentdeploy error handling system.
"""

from agentdeploy.errors import (
    AgentDeployError,
    AgentDeployErrorCode,
    CliUnavailableError,
    ConfigConflictError,
    ConfigurationError,
    DescriptorError,
    PartialBatchFailure,
    PlaceholderResolutionError,
    SourceResolutionError,
    UninstallPolicyError,
    UnsupportedTransportError,
    is_retryable_error,
)


class TestAgentDeployErrorCode:
    """Test error code enumeration."""

    def test_error_codes_grouped_by_subsystem(self):
        """Test that codes fall into their subsystem ranges."""
        assert AgentDeployErrorCode.DESCRIPTOR_ERROR == 1000
        assert AgentDeployErrorCode.UNSUPPORTED_TRANSPORT == 2000
        assert AgentDeployErrorCode.PLACEHOLDER_RESOLUTION_FAILED == 3000
        assert AgentDeployErrorCode.CLI_UNAVAILABLE == 4000
        assert AgentDeployErrorCode.CONFIGURATION_ERROR == 5000
        assert AgentDeployErrorCode.SOURCE_RESOLUTION_FAILED == 6000
        assert AgentDeployErrorCode.INSTALL_FAILED == 7000

    def test_error_code_values_unique(self):
        """Test that all error codes have unique values."""
        codes = [code.value for code in AgentDeployErrorCode]
        assert len(codes) == len(set(codes)), "Duplicate error code values found"


class TestAgentDeployError:
    """Test base AgentDeployError class."""

    def test_basic_error_creation(self):
        """Test creating a basic error."""
        error = AgentDeployError(AgentDeployErrorCode.INTERNAL_ERROR, "Test error")

        assert error.code == AgentDeployErrorCode.INTERNAL_ERROR
        assert error.message == "Test error"
        assert error.data == {}
        assert error.hint is None
        assert str(error) == "Test error"

    def test_to_dict(self):
        """Test JSON-serializable conversion."""
        error = AgentDeployError(
            AgentDeployErrorCode.INSTALL_FAILED, "Nope", {"agent": "codex"}, "Retry"
        )

        assert error.to_dict() == {
            "code": 7000,
            "message": "Nope",
            "data": {"agent": "codex"},
            "hint": "Retry",
        }

    def test_repr(self):
        """Test string representation."""
        error = DescriptorError("bad descriptor")
        assert "DescriptorError" in repr(error)
        assert "bad descriptor" in repr(error)


class TestSpecificErrors:
    """Test specific error subclasses."""

    def test_descriptor_error_has_hint(self):
        """Test descriptor errors carry an actionable hint."""
        error = DescriptorError("missing url", AgentDeployErrorCode.DESCRIPTOR_INCOMPLETE, name="x")

        assert error.code == AgentDeployErrorCode.DESCRIPTOR_INCOMPLETE
        assert error.data == {"name": "x"}
        assert error.hint

    def test_unsupported_transport_default_code(self):
        """Test unsupported transport default code."""
        error = UnsupportedTransportError("websocket not supported")
        assert error.code == AgentDeployErrorCode.UNSUPPORTED_TRANSPORT

    def test_placeholder_error_lists_missing(self):
        """Test placeholder errors expose the missing ids."""
        error = PlaceholderResolutionError("missing", missing=["token", "dir"])

        assert error.missing == ["token", "dir"]
        assert error.data["missing"] == ["token", "dir"]

    def test_cli_unavailable_carries_manual_command(self):
        """Test CLI unavailable error carries binary and manual command."""
        error = CliUnavailableError("codex", manual_command="codex mcp add x -- npx x")

        assert error.binary == "codex"
        assert error.manual_command == "codex mcp add x -- npx x"
        assert "codex" in error.message
        assert error.data["manual_command"] == "codex mcp add x -- npx x"

    def test_uninstall_policy_error(self):
        """Test uninstall policy error message and code."""
        error = UninstallPolicyError("pdf", "shared directory")

        assert error.code == AgentDeployErrorCode.UNINSTALL_POLICY_VIOLATION
        assert "pdf" in error.message
        assert error.data["reason"] == "shared directory"

    def test_partial_batch_failure_counts(self):
        """Test partial batch failure summarizes counts."""
        error = PartialBatchFailure(["a", "b", "c"], ["d"])

        assert error.installed == ["a", "b", "c"]
        assert error.failed == ["d"]
        assert error.message == "1 of 4 installs failed"
        assert error.data == {"installed": 3, "failed": 1}


class TestRetryableErrors:
    """Test retryable error classification."""

    def test_retryable_codes(self):
        """Test transient failures are retryable."""
        assert is_retryable_error(
            SourceResolutionError("clone failed", AgentDeployErrorCode.CLONE_FAILED)
        )
        assert is_retryable_error(ConfigConflictError("/tmp/mcp.json"))
        assert is_retryable_error(ConnectionError())
        assert is_retryable_error(TimeoutError())

    def test_non_retryable(self):
        """Test permanent failures are not retryable."""
        assert not is_retryable_error(ConfigurationError("bad"))
        assert not is_retryable_error(DescriptorError("bad"))
        assert not is_retryable_error(ValueError("bad"))
