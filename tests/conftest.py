"""
Pytest configuration and shared fixtures for agentdeploy tests.

This module provides common test fixtures, configuration, and utilities
used across all agentdeploy test modules.
"""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from agentdeploy.config.loader import ConfigLoader
from agentdeploy.skills.agents import AgentDefinition, AgentRegistry

# Configure pytest-asyncio - auto mode is configured in pyproject.toml


def write_skill(
    root: Path,
    relative: str,
    name: str,
    description: str = "Test skill",
    extra: str = "",
) -> Path:
    """Create a skill directory with a SKILL.md manifest."""
    skill_dir = root / relative
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        f"---\nname: {name}\ndescription: {description}\n{extra}---\n\n# {name}\n"
    )
    return skill_dir


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir).resolve()


@pytest.fixture
def workspace(temp_dir: Path) -> Path:
    """Workspace root for project-scope installs."""
    path = temp_dir / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def home(temp_dir: Path) -> Path:
    """Fake home directory for global-scope installs and detection."""
    path = temp_dir / "home"
    path.mkdir()
    return path


@pytest.fixture
def skill_factory(temp_dir: Path) -> Callable[..., Path]:
    """Create skills inside a source tree under the temp directory."""
    source = temp_dir / "source"
    source.mkdir(exist_ok=True)

    def factory(relative: str, name: str, description: str = "Test skill", extra: str = "") -> Path:
        return write_skill(source, relative, name, description, extra)

    factory.root = source
    return factory


@pytest.fixture
def test_agents() -> list[AgentDefinition]:
    """Small agent table covering separate, shared and universal directories."""
    return [
        AgentDefinition(
            id="universal",
            display_name="Universal",
            skills_dir=".agents/skills",
            global_skills_dir="~/.config/agents/skills",
            universal=True,
        ),
        AgentDefinition(
            id="alpha",
            display_name="Alpha",
            skills_dir=".alpha/skills",
            global_skills_dir="~/.alpha/skills",
            binaries=("alpha",),
            config_dirs=("~/.alpha",),
        ),
        AgentDefinition(
            id="beta",
            display_name="Beta",
            skills_dir=".beta/skills",
            global_skills_dir="~/.beta/skills",
            config_dirs=("~/.beta",),
        ),
        AgentDefinition(
            id="gamma",
            display_name="Gamma",
            skills_dir=".gamma/skills",
        ),
    ]


@pytest.fixture
def registry(test_agents: list[AgentDefinition], home: Path) -> AgentRegistry:
    """Agent registry rooted at the fake home with no binaries on PATH."""
    return AgentRegistry(test_agents, home=home, which=lambda binary: None)


@pytest.fixture
def config_loader() -> ConfigLoader:
    """Create a configuration loader instance."""
    return ConfigLoader()


@pytest.fixture
def default_config(config_loader: ConfigLoader) -> dict[str, Any]:
    """Get default configuration for tests."""
    return config_loader.load_defaults()


@pytest.fixture
def npm_descriptor() -> dict[str, Any]:
    """Registry entry with one npm package using inputs in several fields."""
    return {
        "server": {
            "name": "io.example/filesystem",
            "description": "Filesystem access",
            "repository": {"url": "https://github.com/example/filesystem", "source": "github"},
            "version": "1.2.3",
            "packages": [
                {
                    "registryType": "npm",
                    "identifier": "@example/filesystem",
                    "version": "1.2.3",
                    "packageArguments": [
                        {"type": "positional", "valueHint": "${input:root_dir}"},
                        {
                            "type": "named",
                            "name": "--token",
                            "value": "${input:api_token}",
                            "isSecret": True,
                        },
                    ],
                    "environmentVariables": [
                        {"name": "API_TOKEN", "value": "${input:api_token}", "isSecret": True},
                        {"name": "LOG_LEVEL", "default": "info"},
                    ],
                }
            ],
        },
        "_meta": {"io.modelcontextprotocol.registry/official": {"status": "active"}},
    }


@pytest.fixture
def remote_descriptor() -> dict[str, Any]:
    """Registry entry with one HTTP remote using a bearer header."""
    return {
        "name": "io.example/weather",
        "description": "Weather API",
        "remotes": [
            {
                "type": "streamable-http",
                "url": "https://mcp.example.com/weather",
                "headers": [
                    {
                        "name": "Authorization",
                        "value": "Bearer {api_key}",
                        "isSecret": True,
                        "variables": {
                            "api_key": {"description": "Weather API key", "isSecret": True}
                        },
                    }
                ],
            }
        ],
    }
