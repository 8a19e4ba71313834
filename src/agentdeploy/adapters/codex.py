"""
Adapter for CLIs that take a server entry as discrete flags.

Remote installs support at most a single ``Authorization: Bearer <token>``
header. The token is handed to the child process through a generated
environment variable and never appears in the argument vector.
"""

import logging
import re
import shlex

from ..compiler.builder import CompileResult
from ..compiler.payload import Header, InstallCommandPayload, render_manual_payload
from ..errors import AgentDeployErrorCode, UnsupportedTransportError
from .base import CliAdapter, Invocation, shell_join

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_ENV_PREFIX = "MCP"
BEARER_PATTERN = re.compile(r"^bearer\s+(\S.*)$", re.IGNORECASE)
BARE_INPUT_PATTERN = re.compile(r"^\$\{input:[^}]+\}$")
BEARER_FORM_MESSAGE = "Authorization header must have the form 'Bearer <token>'"


def bearer_token_env_var(server_name: str, prefix: str = DEFAULT_TOKEN_ENV_PREFIX) -> str:
    """Generated variable name: ``<PREFIX>_<SANITIZED_UPPER_NAME>_BEARER_TOKEN``."""
    sanitized = re.sub(r"[^A-Z0-9]+", "_", server_name.upper()).strip("_") or "SERVER"
    return f"{prefix}_{sanitized}_BEARER_TOKEN"


def _unsupported(payload: InstallCommandPayload, message: str) -> UnsupportedTransportError:
    return UnsupportedTransportError(
        message,
        AgentDeployErrorCode.UNSUPPORTED_HEADER_SHAPE,
        hint="Install this server with the editor or claude target instead.",
        headers=[h.name for h in payload.headers],
    )


def _authorization_header(payload: InstallCommandPayload) -> Header | None:
    if not payload.headers:
        return None

    if len(payload.headers) > 1:
        raise _unsupported(
            payload,
            f"Only a single Authorization header is supported, got {len(payload.headers)} headers",
        )

    header = payload.headers[0]
    if header.name.strip().lower() != "authorization":
        raise _unsupported(payload, f"Header '{header.name}' is not supported; only Authorization is")
    return header


def check_header_shape(payload: InstallCommandPayload) -> None:
    """
    Reject header shapes this CLI cannot express, before any input is collected.

    A value that is a bare input placeholder is only checked once resolved.

    Raises:
        UnsupportedTransportError: On more than one header, a header other
            than Authorization, or a literal non-Bearer value
    """
    header = _authorization_header(payload)
    if header is None:
        return
    value = header.value.strip()
    if not (BARE_INPUT_PATTERN.match(value) or BEARER_PATTERN.match(value)):
        raise _unsupported(payload, BEARER_FORM_MESSAGE)


def extract_bearer_token(payload: InstallCommandPayload) -> str | None:
    """
    Validate the resolved header shape and return the bearer token, if any.

    Raises:
        UnsupportedTransportError: On more than one header, a header other
            than Authorization, or a non-Bearer value
    """
    header = _authorization_header(payload)
    if header is None:
        return None

    match = BEARER_PATTERN.match(header.value.strip())
    if not match:
        raise _unsupported(payload, BEARER_FORM_MESSAGE)
    return match.group(1).strip()


class CodexAdapter(CliAdapter):
    """Installs with ``<binary> mcp add <name> ...`` discrete flags."""

    target = "codex"
    binary = "codex"

    def __init__(self, token_env_prefix: str = DEFAULT_TOKEN_ENV_PREFIX, **kwargs) -> None:
        super().__init__(**kwargs)
        self.token_env_prefix = token_env_prefix

    def validate(self, compiled: CompileResult) -> None:
        check_header_shape(compiled.payload)

    def build_invocation(self, payload: InstallCommandPayload, transport: str) -> Invocation:
        payload.ensure_valid()
        argv = ["mcp", "add", payload.name]

        if not payload.is_remote:
            for key, value in payload.env.items():
                argv.extend(["--env", f"{key}={value}"])
            argv.append("--")
            argv.append(payload.command)
            argv.extend(payload.args)
            return Invocation(argv=argv)

        argv.extend(["--url", payload.url])
        token = extract_bearer_token(payload)
        if token is None:
            return Invocation(argv=argv)

        var_name = bearer_token_env_var(payload.name, self.token_env_prefix)
        argv.extend(["--bearer-token-env-var", var_name])
        return Invocation(argv=argv, env={var_name: token})

    def render_manual(self, compiled: CompileResult) -> str:
        invocation = self.build_invocation(
            render_manual_payload(compiled.payload), compiled.transport
        )
        command = shell_join([self.binary, *invocation.argv])
        if invocation.env:
            assignments = " ".join(
                f"{key}={shlex.quote(value)}" for key, value in invocation.env.items()
            )
            return f"{assignments} {command}"
        return command
