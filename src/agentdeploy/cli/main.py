"""
Main CLI entry point for agentdeploy.

This module provides the command-line interface for compiling and
installing MCP server descriptors into editor and agent CLI targets, and
for installing skills across agent directories.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import rich_click as click
import structlog
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..adapters import TARGETS, EditorConfigStore, create_adapter
from ..compiler.builder import compile_descriptor
from ..compiler.payload import InstallInput
from ..config.loader import AgentDeployConfig, ConfigLoader
from ..errors import AgentDeployError, DescriptorError, is_retryable_error
from ..registry.normalizer import normalize_server
from ..service import InstallService
from ..skills.agents import AgentRegistry
from ..skills.installer import BatchResult, MultiAgentInstaller
from ..skills.strategies import MODES

# Configure rich-click styling
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.STYLE_METAVAR = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold"
click.rich_click.STYLE_USAGE_PROG = "bold blue"
click.rich_click.STYLE_OPTION = "bold cyan"
click.rich_click.STYLE_ARGUMENT = "bold yellow"
click.rich_click.STYLE_COMMAND = "bold green"

# Create rich consoles for formatted output
console = Console()
err_console = Console(stderr=True)

# Configure structured logging for CLI
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.dev.ConsoleRenderer()
    ],
    logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
    wrapper_class=structlog.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


class AgentDeployCLIContext:
    """CLI context for sharing state between commands."""

    def __init__(self):
        self.config_path: str | None = None
        self.verbose: bool = False
        self._config: AgentDeployConfig | None = None

    @property
    def config(self) -> AgentDeployConfig:
        if self._config is None:
            self._config = ConfigLoader().load(self.config_path)
            if not self.verbose:
                logging.getLogger().setLevel(self._config.logging.level.upper())
        return self._config

    def registry(self) -> AgentRegistry:
        return AgentRegistry.from_config(self.config)

    def installer(self) -> MultiAgentInstaller:
        return MultiAgentInstaller(self.registry(), self.config.skills)

    def editor_store(self) -> EditorConfigStore:
        editor = self.config.targets.editor
        return EditorConfigStore(editor.config_path, editor.servers_key)


def _fail(error: AgentDeployError) -> None:
    """Print an error with its next step and exit with status 1."""
    err_console.print(f"[red]✗ {error.message}[/red]")
    if error.hint:
        err_console.print(f"[yellow]→ {error.hint}[/yellow]")
    if is_retryable_error(error):
        err_console.print("[dim]This failure may be temporary; run the command again.[/dim]")
    sys.exit(1)


def _unexpected(action: str, error: Exception) -> None:
    logger.error("Unexpected error", action=action, error=str(error))
    err_console.print(f"[red]✗ Error {action}: {error}[/red]")
    sys.exit(1)


def _load_descriptor(descriptor_file: str) -> Any:
    try:
        with open(descriptor_file, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise DescriptorError(
            f"Invalid JSON in {descriptor_file}: {e}",
            hint="Pass a registry server entry saved as JSON.",
        ) from e


def _parse_inputs(pairs: tuple) -> dict[str, str]:
    values = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected ID=VALUE, got '{pair}'", param_hint="--input")
        key, value = pair.split("=", 1)
        values[key.strip()] = value
    return values


async def _prompt_input(install_input: InstallInput) -> str | None:
    """Ask for one input on the terminal; None when the user aborts."""
    label = install_input.description or install_input.id
    try:
        return click.prompt(f"{label} ({install_input.id})", hide_input=install_input.password)
    except click.Abort:
        return None


def _echo_output(stream: str, line: str) -> None:
    err_console.print(f"[dim]{line}[/dim]")


@click.group()
@click.option(
    "--config", "-c",
    type=click.Path(exists=True),
    help="Path to configuration file"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
@click.version_option(__version__, prog_name="agentdeploy")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """
    [bold blue]agentdeploy[/bold blue] - install MCP servers and agent skills.

    Compiles MCP registry descriptors into editor or agent CLI install
    commands, and installs skills from git or local sources into the skill
    directories of several coding agents at once.
    """
    ctx.ensure_object(AgentDeployCLIContext)
    ctx.obj.config_path = config
    ctx.obj.verbose = verbose

    # Configure logging level
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)


@cli.group()
def server():
    """MCP server descriptor commands."""
    pass


@server.command("compile")
@click.argument("descriptor_file", type=click.Path(exists=True))
@click.option("--package", "package_index", type=int, help="Index of the package to compile")
@click.option("--remote", "remote_index", type=int, help="Index of the remote to compile")
@click.option(
    "--format", "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format"
)
def compile_descriptor_command(
    descriptor_file: str,
    package_index: int | None,
    remote_index: int | None,
    output_format: str,
) -> None:
    """Compile a server descriptor into an install payload."""
    try:
        descriptor = _load_descriptor(descriptor_file)
        compiled = compile_descriptor(normalize_server(descriptor), package_index, remote_index)

        if output_format == "json":
            click.echo(json.dumps({
                "mode": compiled.mode,
                "transport": compiled.transport,
                "payload": compiled.payload.to_dict(),
            }, indent=2))
            return

        console.print(
            f"[bold green]{compiled.payload.name}[/bold green] "
            f"[dim]({compiled.mode}, {compiled.transport})[/dim]"
        )
        console.print_json(json.dumps(compiled.payload.to_dict()))

        if compiled.inputs:
            table = Table(title="Inputs", show_header=True, header_style="bold magenta")
            table.add_column("ID", style="cyan", no_wrap=True)
            table.add_column("Description", style="white")
            table.add_column("Secret", style="yellow")
            for install_input in compiled.inputs:
                table.add_row(
                    install_input.id,
                    install_input.description or "",
                    "yes" if install_input.password else "no",
                )
            console.print(table)

    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("compiling descriptor", e)


@server.command("install")
@click.argument("descriptor_file", type=click.Path(exists=True))
@click.option(
    "--target", "-t",
    type=click.Choice(list(TARGETS)),
    required=True,
    help="Install target"
)
@click.option("--package", "package_index", type=int, help="Index of the package to install")
@click.option("--remote", "remote_index", type=int, help="Index of the remote to install")
@click.option("--input", "inputs", multiple=True, help="Input value as ID=VALUE")
@click.pass_context
def install_server(
    ctx: click.Context,
    descriptor_file: str,
    target: str,
    package_index: int | None,
    remote_index: int | None,
    inputs: tuple,
) -> None:
    """Install a server descriptor into an editor or agent CLI."""
    async def _install():
        descriptor = _load_descriptor(descriptor_file)
        values = _parse_inputs(inputs)
        adapter = create_adapter(target, ctx.obj.config.targets, on_output=_echo_output)
        service = InstallService(adapter, prompt=_prompt_input)
        return await service.install(descriptor, package_index, remote_index, values)

    try:
        result = asyncio.run(_install())
    except AgentDeployError as e:
        _fail(e)
    except click.ClickException:
        raise
    except Exception as e:
        _unexpected("installing server", e)
    else:
        if result.success:
            console.print(f"[green]✓ Installed {result.name} into {result.target}[/green]")
            return

        error = result.error
        message = error.message if error else f"{result.target} did not accept the install"
        err_console.print(f"[red]✗ {message}[/red]")
        for line in result.output[-10:]:
            err_console.print(f"  [dim]{line}[/dim]")
        if result.manual_command:
            err_console.print("[yellow]Run this command yourself instead:[/yellow]")
            click.echo(result.manual_command)
        elif error and error.hint:
            err_console.print(f"[yellow]→ {error.hint}[/yellow]")
        sys.exit(1)


@server.command("list")
@click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format"
)
@click.pass_context
def list_servers(ctx: click.Context, output_format: str) -> None:
    """List servers in the editor configuration."""
    try:
        servers = ctx.obj.editor_store().list_servers()

        if output_format == "json":
            click.echo(json.dumps({"servers": servers}, indent=2))
            return

        if not servers:
            console.print("[yellow]No servers configured[/yellow]")
            return

        table = Table(title="Editor MCP Servers", show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Type", style="blue")
        table.add_column("Command / URL", style="white")
        for name, config in servers.items():
            target = config.get("url") or " ".join([config.get("command", ""), *config.get("args", [])])
            table.add_row(name, config.get("type", ""), target.strip())
        console.print(table)

    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("listing servers", e)


@server.command("remove")
@click.argument("name")
@click.pass_context
def remove_server(ctx: click.Context, name: str) -> None:
    """Remove a server from the editor configuration."""
    try:
        removed = asyncio.run(ctx.obj.editor_store().remove_server(name))
        if removed:
            console.print(f"[green]✓ Removed {name}[/green]")
        else:
            err_console.print(f"[red]✗ Server '{name}' is not configured[/red]")
            sys.exit(1)
    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("removing server", e)


@server.command("set-env")
@click.argument("name")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_server_env(ctx: click.Context, name: str, key: str, value: str) -> None:
    """Set an environment variable of a configured server."""
    try:
        asyncio.run(ctx.obj.editor_store().set_server_env(name, key, value))
        console.print(f"[green]✓ Set {key} for {name}[/green]")
    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("updating server", e)


@cli.group()
def skills():
    """Skill installation commands."""
    pass


@skills.command("list")
@click.argument("source")
@click.option("--full-depth", is_flag=True, help="Search the whole source tree")
@click.option("--include-internal", is_flag=True, help="Include skills marked internal")
@click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format"
)
@click.pass_context
def list_skills(
    ctx: click.Context, source: str, full_depth: bool, include_internal: bool, output_format: str
) -> None:
    """List the skills available in a source."""
    try:
        found = asyncio.run(ctx.obj.installer().list_skills_from_source(
            source, include_internal=include_internal, full_depth=full_depth or None
        ))

        if output_format == "json":
            click.echo(json.dumps({"skills": [s.model_dump() for s in found]}, indent=2))
            return

        if not found:
            console.print("[yellow]No skills found[/yellow]")
            return

        table = Table(title=f"Skills in {source}", show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Description", style="white")
        table.add_column("Path", style="dim")
        for skill in found:
            table.add_row(skill.name, skill.description, skill.path)
        console.print(table)
        console.print(f"[dim]Total: {len(found)} skill{'s' if len(found) != 1 else ''}[/dim]")

    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("listing skills", e)


def _print_batch(result: BatchResult, verb: str) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Skill", style="cyan", no_wrap=True)
    table.add_column("Agent", style="blue")
    table.add_column("Status", style="white")
    table.add_column("Path", style="dim")

    for record in result.installed:
        status = f"[green]✓ {verb}[/green]"
        if record.symlink_failed:
            status += " [yellow](copied, symlink failed)[/yellow]"
        table.add_row(record.skill_name, record.agent, status, record.path)
    for record in result.failed:
        table.add_row(record.skill_name, record.agent, f"[red]✗ {record.error}[/red]", record.path)
    console.print(table)

    partial = result.partial_failure()
    if partial is not None:
        err_console.print(f"[yellow]{partial.message}[/yellow]")
        err_console.print(f"[yellow]→ {partial.hint}[/yellow]")


@skills.command("add")
@click.argument("source")
@click.option("--skill", "skill_names", multiple=True, help="Skill to install (repeatable)")
@click.option("--agent", "agents", multiple=True, help="Target agent id, or * for all (repeatable)")
@click.option("--global", "global_scope", is_flag=True, help="Install into global agent directories")
@click.option("--mode", type=click.Choice(list(MODES)), help="Install mode")
@click.option("--full-depth", is_flag=True, help="Search the whole source tree")
@click.pass_context
def add_skills(
    ctx: click.Context,
    source: str,
    skill_names: tuple,
    agents: tuple,
    global_scope: bool,
    mode: str | None,
    full_depth: bool,
) -> None:
    """Install skills from a source into agent directories."""
    try:
        result = asyncio.run(ctx.obj.installer().add_skills_from_source(
            source,
            skill_names=list(skill_names),
            agents=list(agents),
            scope="global" if global_scope else None,
            mode=mode,
            full_depth=full_depth or None,
            workspace=Path.cwd(),
        ))
    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("installing skills", e)
    else:
        _print_batch(result, "installed")
        if result.failed:
            sys.exit(1)


@skills.command("installed")
@click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format"
)
@click.pass_context
def installed_skills(ctx: click.Context, output_format: str) -> None:
    """List skills installed in this workspace and globally."""
    try:
        records = ctx.obj.installer().list_installed_skills(Path.cwd())

        if output_format == "json":
            click.echo(json.dumps({"skills": [r.model_dump() for r in records]}, indent=2))
            return

        if not records:
            console.print("[yellow]No skills installed[/yellow]")
            return

        table = Table(title="Installed Skills", show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Scope", style="blue")
        table.add_column("Agents", style="white")
        table.add_column("Uninstall", style="yellow")
        for record in records:
            table.add_row(
                record.name, record.scope, ", ".join(record.agents), record.uninstall_policy
            )
        console.print(table)

    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("listing installed skills", e)


@skills.command("remove")
@click.argument("name")
@click.option("--agent", "agents", multiple=True, help="Agent to remove from (repeatable)")
@click.option("--global", "global_scope", is_flag=True, help="Remove from global agent directories")
@click.pass_context
def remove_skill(ctx: click.Context, name: str, agents: tuple, global_scope: bool) -> None:
    """Remove an installed skill from some or all of its agents."""
    try:
        result = asyncio.run(ctx.obj.installer().uninstall_skill(
            name,
            scope="global" if global_scope else None,
            agents=list(agents) or None,
            workspace=Path.cwd(),
        ))
    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("removing skill", e)
    else:
        _print_batch(result, "removed")
        if result.failed:
            sys.exit(1)


@cli.group()
def agents():
    """Agent registry commands."""
    pass


@agents.command("list")
@click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format"
)
@click.pass_context
def list_agents(ctx: click.Context, output_format: str) -> None:
    """List supported agents and whether they are detected."""
    try:
        registry = ctx.obj.registry()
        detected = {agent.id for agent in registry.detect()}

        if output_format == "json":
            click.echo(json.dumps({
                "agents": [
                    {**agent.model_dump(), "detected": agent.id in detected}
                    for agent in registry.all()
                ]
            }, indent=2))
            return

        table = Table(title="Agents", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Project dir", style="dim")
        table.add_column("Global dir", style="dim")
        table.add_column("Status", style="green")
        for agent in registry.all():
            status = "[green]✓ detected[/green]" if agent.id in detected else "[dim]- not found[/dim]"
            if agent.universal:
                status += " [blue](universal)[/blue]"
            table.add_row(
                agent.id, agent.display_name, agent.skills_dir, agent.global_skills_dir or "-", status
            )
        console.print(table)

    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("listing agents", e)


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command()
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Output configuration file path"
)
def init(output: str | None) -> None:
    """Initialize an example configuration file."""
    try:
        config_loader = ConfigLoader()
        config_path = Path(output) if output else config_loader.get_default_config_path()
        config_loader.create_example_config(config_path)
        console.print(f"[green]✓ Created configuration at {config_path}[/green]")
    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("creating configuration", e)


@config.command()
@click.argument("config_file", type=click.Path(exists=True))
def validate(config_file: str) -> None:
    """Validate configuration file."""
    try:
        ConfigLoader().load_from_file(config_file)
        console.print("[green]✓ Configuration is valid[/green]")
    except AgentDeployError as e:
        _fail(e)
    except Exception as e:
        _unexpected("validating configuration", e)


def main() -> None:
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
