"""
Descriptor normalization for registry and search responses.

Registry payloads mix ``camelCase`` and ``snake_case`` keys and use ``null``,
absent and empty arrays interchangeably. The functions here map every known
key variant onto one canonical field and default every optional sequence to
an empty tuple so downstream code never distinguishes "missing" from "empty".
"""

import logging
from collections.abc import Mapping
from typing import Any

from .models import (
    Argument,
    InputVariable,
    KeyValueSpec,
    PackageDescriptor,
    RemoteTransport,
    SearchPage,
    ServerDescriptor,
)

logger = logging.getLogger(__name__)

REMOTE_KIND_ALIASES = {
    "streamable-http": "http",
    "streamable_http": "http",
    "streamablehttp": "http",
}


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-None value among the given key variants."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_str(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if isinstance(value, Mapping):
        return value
    return {}


def _choices(raw: Mapping[str, Any]) -> tuple[str, ...]:
    return tuple(str(c) for c in _as_list(raw.get("choices")) if c is not None)


def normalize_input_variable(raw: Any) -> InputVariable:
    """Normalize a named sub-variable definition."""
    raw = _as_mapping(raw)
    return InputVariable(
        description=_as_str(raw.get("description")),
        default=_as_str(raw.get("default")),
        format=_as_str(raw.get("format")),
        value=_as_str(raw.get("value")),
        is_required=_as_bool(_pick(raw, "isRequired", "is_required")),
        is_secret=_as_bool(_pick(raw, "isSecret", "is_secret")),
        choices=_choices(raw),
    )


def _normalize_variables(raw: Any) -> dict[str, InputVariable]:
    return {
        str(key): normalize_input_variable(value)
        for key, value in _as_mapping(raw).items()
        if key
    }


def normalize_argument(raw: Any) -> Argument:
    """Normalize a runtime or package argument."""
    raw = _as_mapping(raw)
    name = _as_str(raw.get("name"))
    kind = _as_str(_pick(raw, "type", "kind"))
    if kind:
        kind = kind.strip().lower()
    else:
        kind = "named" if name else "positional"

    return Argument(
        kind=kind,
        name=name,
        value=_as_str(raw.get("value")),
        value_hint=_as_str(_pick(raw, "valueHint", "value_hint")),
        description=_as_str(raw.get("description")),
        default=_as_str(raw.get("default")),
        format=_as_str(raw.get("format")),
        is_required=_as_bool(_pick(raw, "isRequired", "is_required")),
        is_secret=_as_bool(_pick(raw, "isSecret", "is_secret")),
        is_repeated=_as_bool(_pick(raw, "isRepeated", "is_repeated")),
        choices=_choices(raw),
        variables=_normalize_variables(raw.get("variables")),
    )


def normalize_key_value(raw: Any) -> KeyValueSpec:
    """Normalize an environment variable or header definition."""
    raw = _as_mapping(raw)
    name = _as_str(raw.get("name"))
    return KeyValueSpec(
        name=name.strip() if name else None,
        value=_as_str(raw.get("value")),
        default=_as_str(raw.get("default")),
        description=_as_str(raw.get("description")),
        format=_as_str(raw.get("format")),
        is_required=_as_bool(_pick(raw, "isRequired", "is_required")),
        is_secret=_as_bool(_pick(raw, "isSecret", "is_secret")),
        choices=_choices(raw),
        variables=_normalize_variables(raw.get("variables")),
    )


def normalize_transport(raw: Any) -> RemoteTransport:
    """Normalize a remote transport."""
    raw = _as_mapping(raw)
    kind = _as_str(_pick(raw, "type", "transport_type", "transportType", "kind"))
    if kind:
        kind = kind.strip().lower()
        kind = REMOTE_KIND_ALIASES.get(kind, kind)

    url = _as_str(raw.get("url"))
    return RemoteTransport(
        kind=kind or None,
        url=url.strip() if url else None,
        headers=tuple(normalize_key_value(h) for h in _as_list(raw.get("headers"))),
    )


def normalize_package(raw: Any) -> PackageDescriptor:
    """Normalize a package descriptor."""
    raw = _as_mapping(raw)
    transport = raw.get("transport")

    return PackageDescriptor(
        identifier=_as_str(raw.get("identifier")),
        version=_as_str(raw.get("version")),
        registry_type=_as_str(_pick(raw, "registryType", "registry_type")),
        runtime_hint=_as_str(_pick(raw, "runtimeHint", "runtime_hint")),
        runtime_arguments=tuple(
            normalize_argument(a)
            for a in _as_list(_pick(raw, "runtimeArguments", "runtime_arguments"))
        ),
        package_arguments=tuple(
            normalize_argument(a)
            for a in _as_list(_pick(raw, "packageArguments", "package_arguments"))
        ),
        environment_variables=tuple(
            normalize_key_value(e)
            for e in _as_list(
                _pick(raw, "environmentVariables", "environment_variables")
            )
        ),
        transport=normalize_transport(transport) if isinstance(transport, Mapping) else None,
    )


def _repository_url(raw: Mapping[str, Any]) -> str | None:
    repository = raw.get("repository")
    if isinstance(repository, Mapping):
        return _as_str(repository.get("url"))
    if isinstance(repository, str):
        return repository
    return _as_str(_pick(raw, "repository_url", "repositoryUrl"))


def normalize_server(raw: Any) -> ServerDescriptor:
    """
    Normalize a raw registry entry into a ServerDescriptor.

    Accepts a bare server object, the ``{"server": ..., "_meta": ...}``
    wrapper returned by the registry, or an already normalized descriptor.
    An entry with neither packages nor remotes still normalizes; rejecting
    it is the compiler's job.

    Args:
        raw: Raw registry entry

    Returns:
        Canonical server descriptor
    """
    if isinstance(raw, ServerDescriptor):
        return raw

    raw = _as_mapping(raw)
    meta = raw.get("_meta", raw.get("meta"))
    if isinstance(raw.get("server"), Mapping):
        raw = raw["server"]
        if meta is None:
            meta = raw.get("_meta")

    descriptor = ServerDescriptor(
        name=_as_str(raw.get("name")),
        description=_as_str(raw.get("description")),
        version=_as_str(raw.get("version")),
        repository_url=_repository_url(raw),
        website_url=_as_str(_pick(raw, "websiteUrl", "website_url")),
        packages=tuple(normalize_package(p) for p in _as_list(raw.get("packages"))),
        remotes=tuple(normalize_transport(r) for r in _as_list(raw.get("remotes"))),
        meta=dict(_as_mapping(meta)),
    )

    if not descriptor.is_installable:
        logger.debug(f"Descriptor {descriptor.name!r} has no packages or remotes")
    return descriptor


def normalize_search_response(raw: Any) -> SearchPage:
    """
    Normalize one page of a registry search response.

    Args:
        raw: Raw response with ``servers`` and optional ``metadata``

    Returns:
        SearchPage with normalized descriptors and the next cursor
    """
    raw = _as_mapping(raw)
    metadata = _as_mapping(raw.get("metadata"))
    servers = [
        normalize_server(entry)
        for entry in _as_list(raw.get("servers"))
        if isinstance(entry, (Mapping, ServerDescriptor))
    ]

    count = metadata.get("count")
    return SearchPage(
        servers=tuple(servers),
        next_cursor=_as_str(_pick(metadata, "nextCursor", "next_cursor")),
        count=count if isinstance(count, int) and not isinstance(count, bool) else None,
    )
