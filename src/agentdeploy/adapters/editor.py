"""
Editor-native installation.

The editor adapter hands the unresolved payload to the host's own install
mechanism; the host prompts for inputs itself. Two mechanisms are provided:
writing into the editor's MCP configuration file, or opening the editor's
``<scheme>:mcp/install?<json>`` URI.
"""

import asyncio
import copy
import hashlib
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any
from urllib.parse import quote

import click

from ..compiler.builder import CompileResult
from ..compiler.payload import InstallCommandPayload, apply_resolver, server_config
from ..compiler.placeholders import input_token
from ..errors import AgentDeployError, ConfigConflictError, ConfigurationError
from .base import AdapterResult, TargetAdapter

logger = logging.getLogger(__name__)

InstallPrompt = Callable[[dict[str, Any]], Awaitable[bool]]
Delta = Callable[[dict[str, Any]], dict[str, Any]]


def external_payload(payload: InstallCommandPayload) -> InstallCommandPayload:
    """Keep placeholders for the host to fill; escaped tokens become plain literals."""
    return apply_resolver(payload, input_token)


def editor_entry(compiled: CompileResult) -> dict[str, Any]:
    """
    Build the editor install object: name, server config and inputs.

    Returns:
        ``{"name", "type", ..., "inputs"?}`` suitable for the editor
    """
    payload = external_payload(compiled.payload)
    entry: dict[str, Any] = {"name": payload.name}
    entry.update(server_config(payload, compiled.transport))
    if payload.inputs:
        entry["inputs"] = [i.to_dict() for i in payload.inputs]
    return entry


def build_install_uri(entry: Mapping[str, Any], scheme: str = "vscode") -> str:
    """Render the editor install URI for an install object."""
    return f"{scheme}:mcp/install?{quote(json.dumps(entry), safe='')}"


class EditorConfigStore:
    """
    JSON configuration file holding ``servers`` and ``inputs``.

    Every change goes through ``apply_delta``, which re-reads the file
    immediately before writing and refuses to overwrite a concurrent change.
    """

    def __init__(self, config_path: str | Path, servers_key: str = "servers") -> None:
        """
        Initialize config store.

        Args:
            config_path: Path to the editor MCP configuration file
            servers_key: Key of the server map inside the file
        """
        self.config_path = Path(config_path).expanduser()
        self.servers_key = servers_key
        self._lock = asyncio.Lock()

    def _snapshot(self) -> tuple[dict[str, Any], str | None]:
        """Read the file and its content fingerprint (None when absent)."""
        if not self.config_path.exists():
            return {}, None

        try:
            raw = self.config_path.read_bytes()
        except OSError as e:
            raise ConfigurationError(f"Error reading {self.config_path}: {e}") from e

        fingerprint = hashlib.sha256(raw).hexdigest()
        if not raw.strip():
            return {}, fingerprint

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {self.config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{self.config_path} must contain a JSON object")
        return data, fingerprint

    def read(self) -> dict[str, Any]:
        """Return the current configuration."""
        data, _ = self._snapshot()
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.config_path.with_suffix(self.config_path.suffix + ".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        temp_file.replace(self.config_path)

    async def apply_delta(self, delta: Delta) -> dict[str, Any]:
        """
        Apply a change to the configuration.

        Args:
            delta: Receives a copy of the current configuration and returns
                the updated configuration

        Returns:
            The configuration as written

        Raises:
            ConfigConflictError: If the file changed while the delta ran
        """
        async with self._lock:
            data, fingerprint = self._snapshot()
            updated = delta(copy.deepcopy(data))

            _, current = self._snapshot()
            if current != fingerprint:
                logger.warning(f"Concurrent change detected in {self.config_path}")
                raise ConfigConflictError(str(self.config_path))

            self._write(updated)
            logger.debug(f"Wrote editor configuration {self.config_path}")
            return updated

    def list_servers(self) -> dict[str, Any]:
        servers = self.read().get(self.servers_key, {})
        return servers if isinstance(servers, dict) else {}

    def get_server(self, name: str) -> dict[str, Any] | None:
        return self.list_servers().get(name)

    async def add_server(
        self, name: str, config: dict[str, Any], inputs: list[dict[str, Any]] | None = None
    ) -> None:
        """Add or replace a server entry and merge its input definitions."""

        def delta(data: dict[str, Any]) -> dict[str, Any]:
            data.setdefault(self.servers_key, {})[name] = config
            if inputs:
                known = data.setdefault("inputs", [])
                known_ids = {i.get("id") for i in known if isinstance(i, dict)}
                known.extend(i for i in inputs if i.get("id") not in known_ids)
            return data

        await self.apply_delta(delta)
        logger.info(f"Added server {name} to {self.config_path}")

    async def remove_server(self, name: str) -> bool:
        """
        Remove a server entry.

        Returns:
            True if the server existed
        """
        removed = False

        def delta(data: dict[str, Any]) -> dict[str, Any]:
            nonlocal removed
            servers = data.get(self.servers_key, {})
            if isinstance(servers, dict) and name in servers:
                del servers[name]
                removed = True
            return data

        await self.apply_delta(delta)
        if removed:
            logger.info(f"Removed server {name} from {self.config_path}")
        return removed

    async def set_server_env(self, name: str, key: str, value: str) -> None:
        """Set one environment variable of an installed server."""

        def delta(data: dict[str, Any]) -> dict[str, Any]:
            server = data.get(self.servers_key, {}).get(name)
            if not isinstance(server, dict):
                raise ConfigurationError(f"Server '{name}' is not installed")
            server.setdefault("env", {})[key] = value
            return data

        await self.apply_delta(delta)


def store_install_prompt(store: EditorConfigStore) -> InstallPrompt:
    """Install prompt that writes the entry into an editor config store."""

    async def prompt(entry: dict[str, Any]) -> bool:
        config = {k: v for k, v in entry.items() if k not in ("name", "inputs")}
        await store.add_server(entry["name"], config, entry.get("inputs"))
        return True

    return prompt


def uri_install_prompt(
    scheme: str = "vscode", launcher: Callable[[str], int] = click.launch
) -> InstallPrompt:
    """Install prompt that opens the editor install URI."""

    async def prompt(entry: dict[str, Any]) -> bool:
        uri = build_install_uri(entry, scheme)
        logger.debug(f"Opening {scheme} install URI for {entry['name']}")
        return launcher(uri) == 0

    return prompt


class EditorAdapter(TargetAdapter):
    """Hands the compiled payload to the host's install mechanism as-is."""

    target = "editor"
    requires_values = False

    def __init__(self, prompt: InstallPrompt) -> None:
        self.prompt = prompt

    async def install(
        self, compiled: CompileResult, values: Mapping[str, str] | None = None
    ) -> AdapterResult:
        entry = editor_entry(compiled)
        try:
            accepted = await self.prompt(entry)
        except AgentDeployError as e:
            return AdapterResult(target=self.target, name=entry["name"], success=False, error=e)

        if not accepted:
            logger.info(f"Editor did not accept install of {entry['name']}")
        return AdapterResult(target=self.target, name=entry["name"], success=bool(accepted))
