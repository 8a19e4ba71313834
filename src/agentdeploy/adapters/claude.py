"""Adapter for CLIs that accept a whole server entry as one JSON argument."""

import json
import logging
import re

from ..compiler.builder import CompileResult
from ..compiler.payload import InstallCommandPayload, render_manual_payload, server_config
from .base import CliAdapter, Invocation

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_PATH = "~/.claude/local/claude"


class ClaudeAdapter(CliAdapter):
    """Installs with ``<binary> mcp add-json <name> <json>``."""

    target = "claude"
    binary = "claude"

    def __init__(self, binary: str | None = None, local_path: str | None = DEFAULT_LOCAL_PATH, **kwargs) -> None:
        super().__init__(binary=binary, local_path=local_path, **kwargs)

    def build_invocation(self, payload: InstallCommandPayload, transport: str) -> Invocation:
        config = server_config(payload.ensure_valid(), transport)
        return Invocation(argv=["mcp", "add-json", payload.name, json.dumps(config)])

    def pre_invocations(self, payload: InstallCommandPayload) -> list[list[str]]:
        # Re-install replaces any entry of the same name
        return [["mcp", "remove", payload.name]]

    def render_manual(self, compiled: CompileResult) -> str:
        substituted = render_manual_payload(compiled.payload)
        config = json.dumps(server_config(substituted, compiled.transport), separators=(",", ":"))
        escaped = config.replace("'", "'\"'\"'")
        name = substituted.name
        name_arg = json.dumps(name) if re.search(r"\s", name) else name
        return f"{self.binary} mcp add-json {name_arg} '{escaped}'"
