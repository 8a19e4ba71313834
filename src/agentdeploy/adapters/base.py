"""
Target adapter contract and child-process plumbing shared by CLI adapters.
"""

import asyncio
import logging
import os
import shlex
import shutil
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from ..compiler.builder import CompileResult
from ..compiler.payload import InstallCommandPayload, resolve_payload
from ..errors import (
    AgentDeployError,
    AgentDeployErrorCode,
    CliCommandError,
    CliUnavailableError,
)

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str, str], None]
READ_CHUNK = 64 * 1024


@dataclass
class AdapterResult:
    """Outcome of handing a payload to one target."""

    target: str
    name: str
    success: bool
    exit_code: int | None = None
    output: list[str] = field(default_factory=list)
    manual_command: str | None = None
    error: AgentDeployError | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "target": self.target,
            "name": self.name,
            "success": self.success,
            "exit_code": self.exit_code,
            "output": self.output,
            "manual_command": self.manual_command,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class Invocation:
    """Argument vector plus extra child environment for one CLI call."""

    argv: list[str]
    env: dict[str, str] = field(default_factory=dict)


class TargetAdapter(ABC):
    """Emitter that installs a compiled payload into one host program."""

    target: str = "target"
    requires_values = True

    @abstractmethod
    async def install(
        self, compiled: CompileResult, values: Mapping[str, str] | None = None
    ) -> AdapterResult:
        """Install a compiled payload, resolving inputs from values."""

    def validate(self, compiled: CompileResult) -> None:
        """
        Reject payloads this target can never install, before inputs are collected.

        Raises:
            UnsupportedTransportError: If the payload shape is not supported
        """

    def manual_command(self, compiled: CompileResult) -> str | None:
        """Copyable command with inputs rendered as ``<id>``, if the target has one."""
        return None


async def run_streaming(
    cmd: list[str],
    env: Mapping[str, str] | None = None,
    timeout: float = 120,
    on_output: OutputCallback | None = None,
) -> subprocess.CompletedProcess:
    """
    Run a command, streaming stdout and stderr lines as they arrive.

    Args:
        cmd: Argument vector
        env: Extra environment merged over the current environment
        timeout: Seconds before the child is killed
        on_output: Called with ``("stdout"|"stderr", line)`` per line

    Returns:
        CompletedProcess with the collected output

    Raises:
        CliCommandError: If the command times out
    """
    child_env = {**os.environ, **env} if env else None
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=child_env,
    )

    collected: dict[str, list[str]] = {"stdout": [], "stderr": []}

    def emit(label: str, raw: bytes) -> None:
        line = raw.decode(errors="replace").rstrip("\r")
        collected[label].append(line)
        if on_output:
            on_output(label, line)
        else:
            logger.debug(f"[{label}] {line}")

    async def pump(stream: asyncio.StreamReader, label: str) -> None:
        # Lines may be longer than the StreamReader limit
        pending = b""
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            *lines, pending = (pending + chunk).split(b"\n")
            for raw in lines:
                emit(label, raw)
        if pending:
            emit(label, pending)

    try:
        await asyncio.wait_for(
            asyncio.gather(
                pump(process.stdout, "stdout"),
                pump(process.stderr, "stderr"),
                process.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as e:
        process.kill()
        await process.wait()
        raise CliCommandError(
            f"Command timed out after {timeout}s: {cmd[0]}",
            AgentDeployErrorCode.CLI_TIMEOUT,
            timeout=timeout,
        ) from e

    return subprocess.CompletedProcess(
        args=cmd,
        returncode=process.returncode or 0,
        stdout="\n".join(collected["stdout"]),
        stderr="\n".join(collected["stderr"]),
    )


def shell_join(argv: list[str]) -> str:
    """Render an argument vector as a copyable shell command."""
    return " ".join(shlex.quote(arg) for arg in argv)


class CliAdapter(TargetAdapter):
    """Adapter that installs by spawning an external CLI."""

    binary: str = ""

    def __init__(
        self,
        binary: str | None = None,
        local_path: str | None = None,
        timeout: float = 120,
        on_output: OutputCallback | None = None,
    ) -> None:
        """
        Initialize CLI adapter.

        Args:
            binary: Executable name looked up on PATH
            local_path: User-local install location checked before PATH
            timeout: Seconds allowed per child process
            on_output: Receives streamed child output lines
        """
        self.binary = binary or self.binary
        self.local_path = local_path
        self.timeout = timeout
        self.on_output = on_output

    def locate_binary(self) -> str:
        """
        Find the target binary, preferring the user-local install.

        Raises:
            CliUnavailableError: If the binary cannot be found
        """
        if self.local_path:
            candidate = Path(self.local_path).expanduser()
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)

        found = shutil.which(self.binary)
        if found:
            return found
        raise CliUnavailableError(self.binary)

    @abstractmethod
    def build_invocation(
        self, payload: InstallCommandPayload, transport: str
    ) -> Invocation:
        """Translate a resolved payload into CLI arguments (binary excluded)."""

    def pre_invocations(self, payload: InstallCommandPayload) -> list[list[str]]:
        """Best-effort commands run before the install, failures ignored."""
        return []

    def render_manual(self, compiled: CompileResult) -> str:
        """Render the manual command for this CLI; subclasses override."""
        raise NotImplementedError

    def manual_command(self, compiled: CompileResult) -> str | None:
        try:
            return self.render_manual(compiled)
        except AgentDeployError as e:
            logger.debug(f"No manual command for {compiled.payload.name}: {e}")
            return None

    async def install(
        self, compiled: CompileResult, values: Mapping[str, str] | None = None
    ) -> AdapterResult:
        """
        Resolve the payload, build the CLI call and run it.

        Descriptor-shape errors (unsupported headers, missing inputs) raise;
        a missing binary, a timeout or a failing exit status are reported in
        the returned result together with the manual command.
        """
        self.validate(compiled)
        payload = resolve_payload(compiled.payload, values or {})
        invocation = self.build_invocation(payload, compiled.transport)
        name = payload.name

        try:
            executable = self.locate_binary()
        except CliUnavailableError as e:
            e.manual_command = self.manual_command(compiled)
            e.data["manual_command"] = e.manual_command
            logger.warning(f"{self.binary} CLI unavailable, offering manual command")
            return AdapterResult(
                target=self.target,
                name=name,
                success=False,
                manual_command=e.manual_command,
                error=e,
            )

        for pre_argv in self.pre_invocations(payload):
            try:
                await run_streaming(
                    [executable, *pre_argv], timeout=self.timeout, on_output=self.on_output
                )
            except (AgentDeployError, OSError) as e:
                logger.debug(f"Ignoring failed pre-step {pre_argv[:2]}: {e}")

        logger.info(f"Installing {name} with {self.binary} ({compiled.transport})")
        try:
            completed = await run_streaming(
                [executable, *invocation.argv],
                env=invocation.env,
                timeout=self.timeout,
                on_output=self.on_output,
            )
        except (CliCommandError, OSError) as e:
            error = e if isinstance(e, AgentDeployError) else CliCommandError(str(e))
            return AdapterResult(
                target=self.target,
                name=name,
                success=False,
                manual_command=self.manual_command(compiled),
                error=error,
            )

        output = [line for line in (completed.stdout + "\n" + completed.stderr).splitlines() if line]
        if completed.returncode != 0:
            logger.error(f"{self.binary} exited with status {completed.returncode}")
            return AdapterResult(
                target=self.target,
                name=name,
                success=False,
                exit_code=completed.returncode,
                output=output,
                manual_command=self.manual_command(compiled),
                error=CliCommandError(
                    f"{self.binary} exited with status {completed.returncode}",
                    exit_code=completed.returncode,
                ),
            )

        logger.info(f"Installed {name} with {self.binary}")
        return AdapterResult(
            target=self.target,
            name=name,
            success=True,
            exit_code=0,
            output=output,
        )
