"""
Compiled install payloads and the final substitution pass.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from ..errors import AgentDeployErrorCode, DescriptorError, PlaceholderResolutionError
from .placeholders import placeholder_ids, substitute

logger = logging.getLogger(__name__)


class InstallInput(BaseModel):
    """A value the user must supply before the payload can run."""

    id: str
    description: str | None = None
    password: bool = False
    type: str = "promptString"

    class Config:
        frozen = True

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "id": self.id}
        if self.description:
            data["description"] = self.description
        data["password"] = self.password
        return data


class Header(BaseModel):
    """Ordered request header of a remote payload."""

    name: str
    value: str = ""

    class Config:
        frozen = True


class InstallCommandPayload(BaseModel):
    """Local command or remote endpoint ready to hand to a target adapter."""

    name: str
    command: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    url: str | None = None
    headers: tuple[Header, ...] = ()
    inputs: tuple[InstallInput, ...] = ()

    class Config:
        frozen = True

    @property
    def is_remote(self) -> bool:
        return self.url is not None

    def ensure_valid(self) -> "InstallCommandPayload":
        """
        Check the command/url invariant.

        Returns:
            The payload itself

        Raises:
            DescriptorError: If both or neither of command and url are set
        """
        if bool(self.command) == bool(self.url):
            state = "both" if self.command else "neither"
            raise DescriptorError(
                f"Payload '{self.name}' has {state} of command and url",
                AgentDeployErrorCode.PAYLOAD_INVALID,
                name=self.name,
            )
        return self

    def referenced_ids(self) -> list[str]:
        """Ids of every placeholder still present in args, env and headers."""
        ids: list[str] = []
        texts = [*self.args, *self.env.values(), *(h.value for h in self.headers)]
        for text in texts:
            for input_id in placeholder_ids(text):
                if input_id not in ids:
                    ids.append(input_id)
        return ids

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the compiled payload JSON shape, omitting empty fields."""
        data: dict[str, Any] = {"name": self.name}
        if self.command:
            data["command"] = self.command
        if self.args:
            data["args"] = list(self.args)
        if self.env:
            data["env"] = dict(self.env)
        if self.url:
            data["url"] = self.url
        if self.headers:
            data["headers"] = [{"name": h.name, "value": h.value} for h in self.headers]
        if self.inputs:
            data["inputs"] = [i.to_dict() for i in self.inputs]
        return data


def apply_resolver(
    payload: InstallCommandPayload, resolver: Callable[[str], str]
) -> InstallCommandPayload:
    """Substitute every placeholder in args, env and header values."""
    return payload.model_copy(
        update={
            "args": tuple(substitute(arg, resolver) for arg in payload.args),
            "env": {key: substitute(value, resolver) for key, value in payload.env.items()},
            "headers": tuple(
                Header(name=h.name, value=substitute(h.value, resolver))
                for h in payload.headers
            ),
        }
    )


def missing_inputs(
    payload: InstallCommandPayload, values: Mapping[str, str]
) -> list[InstallInput]:
    """Inputs of the payload that have no value yet."""
    return [i for i in payload.inputs if values.get(i.id) is None]


def resolve_payload(
    payload: InstallCommandPayload, values: Mapping[str, str]
) -> InstallCommandPayload:
    """
    Produce the executable payload by substituting resolved input values.

    Args:
        payload: Compiled payload
        values: Input values keyed by input id

    Returns:
        Payload with no remaining placeholders and an empty inputs list

    Raises:
        PlaceholderResolutionError: If a referenced input has no value
    """
    missing = [i for i in payload.referenced_ids() if values.get(i) is None]
    if missing:
        raise PlaceholderResolutionError(
            f"Missing values for inputs: {', '.join(missing)}", missing=missing
        )

    resolved = apply_resolver(payload, lambda input_id: values[input_id])
    logger.debug(f"Resolved {len(payload.inputs)} inputs for payload {payload.name}")
    return resolved.model_copy(update={"inputs": ()})


def render_manual_payload(payload: InstallCommandPayload) -> InstallCommandPayload:
    """Substitute every input as ``<id>`` for display in a copyable command."""
    return apply_resolver(payload, lambda input_id: f"<{input_id}>")


def server_config(payload: InstallCommandPayload, transport: str) -> dict[str, Any]:
    """
    Build the ``{type, command?, args?, env?, url?, headers?}`` server entry.

    Local fields are emitted only for ``stdio`` and remote fields only for
    ``http``/``sse``; headers become a name to value map.
    """
    config: dict[str, Any] = {"type": transport}

    if transport == "stdio":
        if payload.command:
            config["command"] = payload.command
        if payload.args:
            config["args"] = list(payload.args)
        if payload.env:
            config["env"] = dict(payload.env)
    else:
        if payload.url:
            config["url"] = payload.url
        header_map = {h.name: h.value for h in payload.headers if h.name}
        if header_map:
            config["headers"] = header_map

    return config
