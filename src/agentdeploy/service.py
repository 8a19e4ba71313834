"""
MCP server install orchestration.

Ties the descriptor path together: normalize, compile the selected package
or remote, collect any missing input values, then hand the payload to a
target adapter.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from .adapters import AdapterResult, TargetAdapter
from .compiler.builder import CompileResult, compile_descriptor
from .compiler.payload import InstallInput, missing_inputs
from .errors import AgentDeployErrorCode, PlaceholderResolutionError
from .registry.normalizer import normalize_server

logger = logging.getLogger(__name__)

InputPrompt = Callable[[InstallInput], Awaitable[str | None]]


class InstallService:
    """Compile descriptors and install them through one adapter."""

    def __init__(self, adapter: TargetAdapter, prompt: InputPrompt | None = None) -> None:
        """
        Initialize install service.

        Args:
            adapter: Target adapter to install through
            prompt: Asks the user for one input; returning None cancels
        """
        self.adapter = adapter
        self.prompt = prompt

    def compile(
        self,
        descriptor: Any,
        package_index: int | None = None,
        remote_index: int | None = None,
    ) -> CompileResult:
        """Normalize a raw or canonical descriptor and compile the selection."""
        server = normalize_server(descriptor)
        return compile_descriptor(server, package_index, remote_index)

    async def collect_values(
        self, compiled: CompileResult, values: Mapping[str, str] | None = None
    ) -> dict[str, str]:
        """
        Collect a value for every input that has none yet.

        Raises:
            PlaceholderResolutionError: If the user cancels a prompt or no
                prompt is available for a missing input
        """
        collected = dict(values or {})
        for install_input in missing_inputs(compiled.payload, collected):
            if self.prompt is None:
                raise PlaceholderResolutionError(
                    f"No value provided for input '{install_input.id}'",
                    missing=[i.id for i in missing_inputs(compiled.payload, collected)],
                )

            value = await self.prompt(install_input)
            if value is None:
                error = PlaceholderResolutionError(
                    f"Input prompt for '{install_input.id}' was canceled",
                    missing=[install_input.id],
                )
                error.code = AgentDeployErrorCode.INPUT_CANCELED
                raise error
            collected[install_input.id] = value

        return collected

    async def install(
        self,
        descriptor: Any,
        package_index: int | None = None,
        remote_index: int | None = None,
        values: Mapping[str, str] | None = None,
    ) -> AdapterResult:
        """
        Compile and install one descriptor selection.

        Args:
            descriptor: Raw registry entry or canonical descriptor
            package_index: Selected package
            remote_index: Selected remote
            values: Input values already known, keyed by input id

        Returns:
            Adapter result
        """
        compiled = self.compile(descriptor, package_index, remote_index)
        logger.info(
            f"Installing {compiled.payload.name} ({compiled.mode}) via {self.adapter.target}"
        )
        self.adapter.validate(compiled)

        if self.adapter.requires_values:
            resolved_values = await self.collect_values(compiled, values)
        else:
            resolved_values = dict(values or {})

        return await self.adapter.install(compiled, resolved_values)

    def manual_command(self, compiled: CompileResult) -> str | None:
        return self.adapter.manual_command(compiled)
