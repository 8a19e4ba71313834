"""
Placeholder resolution for package arguments, environment variables and
remote headers.

One ``InputCollector`` is shared by every field of a payload so that an input
id referenced from several fields is prompted for exactly once.
"""

import itertools
import logging
from collections.abc import Iterator, Mapping, Sequence

from ..registry.models import Argument, InputVariable, KeyValueSpec, RemoteTransport
from .payload import Header, InstallInput
from .placeholders import (
    FIELD_SYNTAX,
    HEADER_SYNTAX,
    canonicalize,
    has_placeholder,
    input_token,
    placeholder_ids,
    sanitize_id,
)

logger = logging.getLogger(__name__)


class InputCollector:
    """Ordered, deduplicated set of install inputs."""

    def __init__(self) -> None:
        self._inputs: dict[str, InstallInput] = {}

    def ensure(
        self, input_id: str, description: str | None = None, password: bool = False
    ) -> str:
        """
        Register an input unless its id is already known.

        Returns:
            The canonical placeholder token for the id
        """
        if input_id not in self._inputs:
            self._inputs[input_id] = InstallInput(
                id=input_id, description=description, password=password
            )
        return input_token(input_id)

    def collect(
        self,
        text: str,
        variables: Mapping[str, InputVariable],
        description: str | None,
        password: bool,
    ) -> None:
        """Register every placeholder referenced in text."""
        for input_id in placeholder_ids(text, FIELD_SYNTAX):
            variable = variables.get(input_id)
            if variable is not None:
                self.ensure(
                    input_id, variable.description or description, variable.is_secret
                )
            else:
                self.ensure(input_id, description, password)

    @property
    def inputs(self) -> tuple[InstallInput, ...]:
        return tuple(self._inputs.values())

    def __contains__(self, input_id: str) -> bool:
        return input_id in self._inputs

    def __len__(self) -> int:
        return len(self._inputs)


def resolve_arguments(
    arguments: Sequence[Argument],
    collector: InputCollector,
    positional_index: Iterator[int] | None = None,
) -> list[str]:
    """
    Flatten arguments into an argv list in declaration order.

    Named arguments emit their flag followed by the value token. An argument
    without value, hint or default becomes a prompt: ``arg_<n>`` for
    positional arguments, ``arg_<sanitized flag>`` for named ones.

    Args:
        arguments: Arguments to flatten
        collector: Shared input collector
        positional_index: Counter for positional fallback ids, shared across
            runtime and package argument lists

    Returns:
        Argument vector
    """
    if positional_index is None:
        positional_index = itertools.count()

    args: list[str] = []
    for argument in arguments:
        if argument.kind not in ("positional", "named"):
            logger.debug(f"Skipping argument of unknown kind {argument.kind!r}")
            continue

        if argument.kind == "named" and argument.name:
            args.append(argument.name)

        text = argument.value or argument.value_hint or argument.default
        if text:
            label = argument.name or "argument"
            collector.collect(
                text,
                argument.variables,
                argument.description or f"Value for {label}",
                argument.is_secret,
            )
            args.append(text)
            continue

        if argument.kind == "named" and argument.name:
            input_id = f"arg_{sanitize_id(argument.name)}"
            description = argument.description or f"Value for {argument.name}"
        else:
            input_id = f"arg_{next(positional_index)}"
            description = argument.description or "Provide value"

        args.append(collector.ensure(input_id, description, argument.is_secret))

    return args


def resolve_environment(
    variables: Sequence[KeyValueSpec], collector: InputCollector
) -> dict[str, str]:
    """
    Build the environment map for a package.

    A variable with neither value nor default is prompted for under its own
    name.
    """
    env: dict[str, str] = {}
    for variable in variables:
        key = variable.name
        if not key:
            continue
        if key in env:
            logger.warning(f"Duplicate environment variable {key!r} ignored")
            continue

        text = variable.value or variable.default
        if text:
            collector.collect(
                text,
                variable.variables,
                variable.description or f"Value for {key}",
                variable.is_secret,
            )
            env[key] = text
        else:
            env[key] = collector.ensure(key, variable.description, variable.is_secret)

    return env


def resolve_header(header: KeyValueSpec, collector: InputCollector) -> Header | None:
    """
    Resolve one header template into a header whose value uses only
    canonical placeholders.

    Returns:
        The resolved header, or None when the header has no name
    """
    name = header.name
    if not name:
        return None

    template = header.value or header.default or ""
    value = canonicalize(template, HEADER_SYNTAX)

    referenced = placeholder_ids(value, FIELD_SYNTAX)
    for input_id in referenced:
        variable = header.variables.get(input_id)
        if variable is not None:
            collector.ensure(
                input_id, variable.description or header.description, variable.is_secret
            )
        else:
            collector.ensure(input_id, header.description, header.is_secret)

    if not value and header.variables:
        first_id, variable = next(iter(header.variables.items()))
        value = collector.ensure(
            first_id, variable.description or header.description, variable.is_secret
        )

    needs_prompt = (header.is_secret and not has_placeholder(value)) or (
        not value and (header.is_secret or header.is_required)
    )
    if needs_prompt:
        fallback_id = f"header_{sanitize_id(name) or 'value'}"
        value = collector.ensure(fallback_id, header.description, header.is_secret)

    return Header(name=name, value=value)


def resolve_headers(
    remote: RemoteTransport, collector: InputCollector
) -> list[Header]:
    """Resolve every named header of a remote in declaration order."""
    headers = []
    for spec in remote.headers:
        header = resolve_header(spec, collector)
        if header is not None:
            headers.append(header)
    return headers
