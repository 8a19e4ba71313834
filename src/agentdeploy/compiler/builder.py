"""
Command compilation for MCP server descriptors.

This module turns one selected package or remote of a canonical
ServerDescriptor into an InstallCommandPayload: either a local command with
arguments and environment, or a remote URL with headers.
"""

import itertools
import logging
from typing import Literal

from pydantic import BaseModel

from ..errors import AgentDeployErrorCode, DescriptorError, UnsupportedTransportError
from ..registry.models import PackageDescriptor, RemoteTransport, ServerDescriptor
from .payload import InstallCommandPayload, InstallInput
from .resolver import InputCollector, resolve_arguments, resolve_environment, resolve_headers

logger = logging.getLogger(__name__)

RUNTIME_COMMANDS = {
    "npm": "npx",
    "pypi": "uvx",
    "oci": "docker",
}

REMOTE_TRANSPORTS = ("http", "sse")


class CompileResult(BaseModel):
    """Outcome of compiling one package or remote."""

    mode: Literal["package", "remote"]
    transport: Literal["stdio", "http", "sse"]
    payload: InstallCommandPayload

    class Config:
        frozen = True

    @property
    def inputs(self) -> tuple[InstallInput, ...]:
        return self.payload.inputs


def resolve_runtime_command(package: PackageDescriptor) -> str:
    """
    Pick the launcher command for a package.

    Raises:
        UnsupportedTransportError: If no runtime hint is given and the
            registry type has no known launcher
    """
    if package.runtime_hint:
        return package.runtime_hint

    registry_type = (package.registry_type or "").lower()
    command = RUNTIME_COMMANDS.get(registry_type)
    if command is None:
        raise UnsupportedTransportError(
            f"Package '{package.identifier}' has no supported runtime command "
            f"(registry type: {package.registry_type or 'unknown'})",
            AgentDeployErrorCode.UNSUPPORTED_REGISTRY_TYPE,
            hint="Choose a package published to npm, PyPI or an OCI registry.",
            registry_type=package.registry_type,
        )
    return command


def package_spec(package: PackageDescriptor) -> str | None:
    """Return the package-identity argument for npm and PyPI packages."""
    if not package.identifier:
        return None

    registry_type = (package.registry_type or "").lower()
    if registry_type == "npm":
        if package.version:
            return f"{package.identifier}@{package.version}"
        return package.identifier
    if registry_type == "pypi":
        if package.version and package.version != "latest":
            return f"{package.identifier}=={package.version}"
        return package.identifier
    return None


def compile_package(
    server: ServerDescriptor | None, package: PackageDescriptor
) -> CompileResult:
    """
    Compile a package into a local command payload.

    Runtime arguments precede package arguments. The package-identity
    argument follows the runtime arguments unless an existing argument
    already contains the identifier.

    Args:
        server: Owning descriptor, used for fallback naming
        package: Selected package

    Returns:
        CompileResult with a stdio payload

    Raises:
        UnsupportedTransportError: If the registry type is not supported
    """
    command = resolve_runtime_command(package)
    collector = InputCollector()
    positional_index = itertools.count()

    runtime_args = resolve_arguments(package.runtime_arguments, collector, positional_index)
    package_args = resolve_arguments(package.package_arguments, collector, positional_index)
    env = resolve_environment(package.environment_variables, collector)

    args = runtime_args
    spec = package_spec(package)
    if spec and not any(package.identifier in arg for arg in runtime_args + package_args):
        args = args + [spec]
    args = args + package_args

    name = package.identifier or (server.name if server else None) or "server"
    payload = InstallCommandPayload(
        name=name,
        command=command,
        args=tuple(args),
        env=env,
        inputs=collector.inputs,
    ).ensure_valid()

    logger.debug(f"Compiled package {name}: {command} with {len(args)} args")
    return CompileResult(mode="package", transport="stdio", payload=payload)


def compile_remote(
    server: ServerDescriptor | None, remote: RemoteTransport
) -> CompileResult:
    """
    Compile a remote transport into a URL payload.

    Raises:
        DescriptorError: If the remote has no URL
        UnsupportedTransportError: If the remote kind is not http or sse
    """
    url = (remote.url or "").strip()
    if not url:
        raise DescriptorError(
            "Remote endpoint is missing a URL",
            AgentDeployErrorCode.DESCRIPTOR_INCOMPLETE,
        )

    kind = (remote.kind or "http").lower()
    if kind not in REMOTE_TRANSPORTS:
        raise UnsupportedTransportError(
            f"Remote transport '{remote.kind}' is not supported",
            kind=remote.kind,
        )

    collector = InputCollector()
    headers = resolve_headers(remote, collector)

    name = (server.name if server else None) or "server"
    payload = InstallCommandPayload(
        name=name,
        url=url,
        headers=tuple(headers),
        inputs=collector.inputs,
    ).ensure_valid()

    logger.debug(f"Compiled remote {name}: {kind} {url} with {len(headers)} headers")
    return CompileResult(mode="remote", transport=kind, payload=payload)


def compile_descriptor(
    server: ServerDescriptor,
    package_index: int | None = None,
    remote_index: int | None = None,
) -> CompileResult:
    """
    Compile the selected package or remote of a descriptor.

    With no selection, the first package wins, then the first remote.

    Args:
        server: Canonical descriptor
        package_index: Index into ``server.packages``
        remote_index: Index into ``server.remotes``

    Returns:
        CompileResult for the selection

    Raises:
        DescriptorError: If the selection is ambiguous, out of range, or
            the descriptor has nothing installable
    """
    if package_index is not None and remote_index is not None:
        raise DescriptorError("Select either a package or a remote, not both")

    if package_index is not None:
        if not 0 <= package_index < len(server.packages):
            raise DescriptorError(
                f"Package index {package_index} out of range "
                f"({len(server.packages)} packages)",
                AgentDeployErrorCode.DESCRIPTOR_INCOMPLETE,
            )
        return compile_package(server, server.packages[package_index])

    if remote_index is not None:
        if not 0 <= remote_index < len(server.remotes):
            raise DescriptorError(
                f"Remote index {remote_index} out of range "
                f"({len(server.remotes)} remotes)",
                AgentDeployErrorCode.DESCRIPTOR_INCOMPLETE,
            )
        return compile_remote(server, server.remotes[remote_index])

    if server.packages:
        return compile_package(server, server.packages[0])
    if server.remotes:
        return compile_remote(server, server.remotes[0])

    raise DescriptorError(
        f"Server '{server.name or 'server'}' has no packages or remotes",
        AgentDeployErrorCode.DESCRIPTOR_INCOMPLETE,
        hint="Pick a different search result; this one cannot be installed.",
    )
