"""Target adapters for installing compiled MCP payloads."""

from ..config.loader import TargetsConfig
from ..errors import ConfigurationError
from .base import AdapterResult, CliAdapter, OutputCallback, TargetAdapter
from .claude import ClaudeAdapter
from .codex import CodexAdapter, bearer_token_env_var
from .editor import (
    EditorAdapter,
    EditorConfigStore,
    build_install_uri,
    store_install_prompt,
    uri_install_prompt,
)

TARGETS = ("editor", "claude", "codex")


def create_adapter(
    target: str,
    config: TargetsConfig | None = None,
    on_output: OutputCallback | None = None,
) -> TargetAdapter:
    """
    Create the adapter for a target from configuration.

    Args:
        target: One of ``editor``, ``claude`` or ``codex``
        config: Target configuration (defaults when omitted)
        on_output: Receives streamed child output for CLI targets

    Returns:
        Configured adapter
    """
    config = config or TargetsConfig()

    if target == "editor":
        if config.editor.mode == "uri":
            return EditorAdapter(uri_install_prompt(config.editor.uri_scheme))
        store = EditorConfigStore(config.editor.config_path, config.editor.servers_key)
        return EditorAdapter(store_install_prompt(store))

    if target == "claude":
        return ClaudeAdapter(
            binary=config.claude.binary,
            local_path=config.claude.local_path,
            timeout=config.claude.timeout,
            on_output=on_output,
        )

    if target == "codex":
        return CodexAdapter(
            token_env_prefix=config.codex.token_env_prefix,
            binary=config.codex.binary,
            local_path=config.codex.local_path,
            timeout=config.codex.timeout,
            on_output=on_output,
        )

    raise ConfigurationError(f"Unknown install target '{target}'; expected one of {TARGETS}")


__all__ = [
    "TARGETS",
    "AdapterResult",
    "CliAdapter",
    "ClaudeAdapter",
    "CodexAdapter",
    "EditorAdapter",
    "EditorConfigStore",
    "TargetAdapter",
    "bearer_token_env_var",
    "build_install_uri",
    "create_adapter",
    "store_install_prompt",
    "uri_install_prompt",
]
