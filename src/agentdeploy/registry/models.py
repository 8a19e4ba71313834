"""
Canonical descriptor models for installable MCP servers.

Instances are produced by the normalizer and never mutated afterwards.
"""

from typing import Any

from pydantic import BaseModel, Field

ARGUMENT_KINDS = ("positional", "named")
REMOTE_KINDS = ("stdio", "http", "sse")


class InputVariable(BaseModel):
    """Named sub-variable referenced from a header or argument template."""

    description: str | None = None
    default: str | None = None
    format: str | None = None
    value: str | None = None
    is_required: bool = False
    is_secret: bool = False
    choices: tuple[str, ...] = ()

    class Config:
        frozen = True


class Argument(BaseModel):
    """Runtime or package argument of a package descriptor."""

    kind: str = Field(default="positional", description="positional or named")
    name: str | None = None
    value: str | None = None
    value_hint: str | None = None
    description: str | None = None
    default: str | None = None
    format: str | None = None
    is_required: bool = False
    is_secret: bool = False
    is_repeated: bool = False
    choices: tuple[str, ...] = ()
    variables: dict[str, InputVariable] = Field(default_factory=dict)

    class Config:
        frozen = True


class KeyValueSpec(BaseModel):
    """Environment variable or header definition."""

    name: str | None = None
    value: str | None = None
    default: str | None = None
    description: str | None = None
    format: str | None = None
    is_required: bool = False
    is_secret: bool = False
    choices: tuple[str, ...] = ()
    variables: dict[str, InputVariable] = Field(default_factory=dict)

    class Config:
        frozen = True


EnvVarSpec = KeyValueSpec
HeaderSpec = KeyValueSpec


class RemoteTransport(BaseModel):
    """Remote endpoint (or a package's declared transport)."""

    kind: str | None = None
    url: str | None = None
    headers: tuple[HeaderSpec, ...] = ()

    class Config:
        frozen = True


class PackageDescriptor(BaseModel):
    """Package published to npm, PyPI, an OCI registry or elsewhere."""

    identifier: str | None = None
    version: str | None = None
    registry_type: str | None = None
    runtime_hint: str | None = None
    runtime_arguments: tuple[Argument, ...] = ()
    package_arguments: tuple[Argument, ...] = ()
    environment_variables: tuple[EnvVarSpec, ...] = ()
    transport: RemoteTransport | None = None

    class Config:
        frozen = True


class ServerDescriptor(BaseModel):
    """Canonical server descriptor built from one registry entry."""

    name: str | None = None
    description: str | None = None
    version: str | None = None
    repository_url: str | None = None
    website_url: str | None = None
    packages: tuple[PackageDescriptor, ...] = ()
    remotes: tuple[RemoteTransport, ...] = ()
    meta: dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True

    @property
    def is_installable(self) -> bool:
        """Whether at least one package or remote is present."""
        return bool(self.packages or self.remotes)


class SearchPage(BaseModel):
    """One page of a registry search response."""

    servers: tuple[ServerDescriptor, ...] = ()
    next_cursor: str | None = None
    count: int | None = None

    class Config:
        frozen = True
