"""Tests for CLI functionality."""

import json
from unittest.mock import patch

import git
import pytest
from click.testing import CliRunner

from agentdeploy.cli.main import AgentDeployCLIContext, cli


def _json_output(output: str):
    return json.loads(output[output.index("{"):])


@pytest.fixture(autouse=True)
def isolated_config(temp_dir, monkeypatch):
    """Point the default configuration path at a missing file."""
    monkeypatch.setenv("AGENTDEPLOY_CONFIG", str(temp_dir / "missing.toml"))


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_config(temp_dir):
    """Create temporary config file with targets inside the temp directory."""
    config_path = temp_dir / "config.toml"
    config_path.write_text(f"""
version = "0.1.0"

[targets.editor]
config_path = "{temp_dir / 'editor' / 'mcp.json'}"

[targets.codex]
binary = "agentdeploy-missing-codex"
token_env_prefix = "TEST"
""")
    return str(config_path)


@pytest.fixture
def descriptor_file(temp_dir, npm_descriptor):
    """Write the npm descriptor to disk."""
    path = temp_dir / "descriptor.json"
    path.write_text(json.dumps(npm_descriptor))
    return str(path)


class TestCLI:
    def test_cli_help(self, runner):
        """Test CLI help command."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "agentdeploy" in result.output

    def test_version(self, runner):
        """Test version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestServerCommands:
    def test_compile_json(self, runner, descriptor_file):
        """Test compiling a descriptor to JSON."""
        result = runner.invoke(cli, ["server", "compile", descriptor_file, "--format", "json"])

        assert result.exit_code == 0
        data = _json_output(result.output)
        assert data["mode"] == "package"
        assert data["transport"] == "stdio"
        assert data["payload"]["command"] == "npx"
        assert [i["id"] for i in data["payload"]["inputs"]] == ["root_dir", "api_token"]

    def test_compile_text(self, runner, descriptor_file):
        """Test compiling a descriptor to the text view."""
        result = runner.invoke(cli, ["server", "compile", descriptor_file])

        assert result.exit_code == 0
        assert "Inputs" in result.output
        assert "api_token" in result.output

    def test_compile_invalid_json(self, runner, temp_dir):
        """Test an unreadable descriptor fails cleanly."""
        path = temp_dir / "bad.json"
        path.write_text("{not json")

        result = runner.invoke(cli, ["server", "compile", str(path)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_compile_nothing_installable(self, runner, temp_dir):
        """Test a descriptor without packages or remotes fails."""
        path = temp_dir / "empty.json"
        path.write_text(json.dumps({"name": "empty"}))

        result = runner.invoke(cli, ["server", "compile", str(path)])

        assert result.exit_code == 1
        assert "no packages or remotes" in result.output

    def test_editor_install_list_and_remove(self, runner, temp_config, descriptor_file):
        """Test the editor target round trip through the config store."""
        result = runner.invoke(
            cli, ["--config", temp_config, "server", "install", descriptor_file, "-t", "editor"]
        )
        assert result.exit_code == 0
        assert "Installed" in result.output

        result = runner.invoke(cli, ["--config", temp_config, "server", "list", "--format", "json"])
        assert result.exit_code == 0
        servers = _json_output(result.output)["servers"]
        assert servers["@example/filesystem"]["env"]["API_TOKEN"] == "${input:api_token}"

        result = runner.invoke(
            cli,
            ["--config", temp_config, "server", "set-env", "@example/filesystem", "LOG_LEVEL", "debug"],
        )
        assert result.exit_code == 0

        result = runner.invoke(
            cli, ["--config", temp_config, "server", "remove", "@example/filesystem"]
        )
        assert result.exit_code == 0

        result = runner.invoke(
            cli, ["--config", temp_config, "server", "remove", "@example/filesystem"]
        )
        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_cli_target_unavailable_prints_manual_command(
        self, runner, temp_config, descriptor_file
    ):
        """Test a missing target CLI prints a manual command and exits 1."""
        result = runner.invoke(
            cli,
            [
                "--config", temp_config,
                "server", "install", descriptor_file,
                "-t", "codex",
                "--input", "root_dir=/data",
                "--input", "api_token=s3cret",
            ],
        )

        assert result.exit_code == 1
        assert "Run this command yourself" in result.output
        assert "agentdeploy-missing-codex mcp add" in result.output
        assert "<api_token>" in result.output

    def test_prompted_inputs(self, runner, temp_config, descriptor_file):
        """Test missing inputs are prompted for on the terminal."""
        result = runner.invoke(
            cli,
            ["--config", temp_config, "server", "install", descriptor_file, "-t", "codex"],
            input="/data\ns3cret\n",
        )

        assert "root_dir" in result.output
        assert "Run this command yourself" in result.output

    def test_prompt_cancel(self, runner, temp_config, descriptor_file):
        """Test aborting a prompt cancels the install."""
        result = runner.invoke(
            cli,
            ["--config", temp_config, "server", "install", descriptor_file, "-t", "codex"],
            input="",
        )

        assert result.exit_code == 1
        assert "canceled" in result.output

    def test_bad_input_pair(self, runner, temp_config, descriptor_file):
        """Test malformed --input values are rejected."""
        result = runner.invoke(
            cli,
            [
                "--config", temp_config,
                "server", "install", descriptor_file, "-t", "codex", "--input", "novalue",
            ],
        )

        assert result.exit_code == 2
        assert "ID=VALUE" in result.output


class TestSkillsCommands:
    @pytest.fixture
    def source(self, skill_factory):
        skill_factory("skills/pdf", "pdf", "Work with PDFs")
        skill_factory("skills/docx", "docx", "Work with documents")
        return str(skill_factory.root)

    @pytest.fixture(autouse=True)
    def use_test_registry(self, registry, workspace, monkeypatch):
        """Use the test agent table and run inside the workspace."""
        monkeypatch.chdir(workspace)
        with patch.object(AgentDeployCLIContext, "registry", return_value=registry):
            yield registry

    def test_skills_list(self, runner, source):
        """Test listing skills in a source."""
        result = runner.invoke(cli, ["skills", "list", source, "--format", "json"])

        assert result.exit_code == 0
        names = sorted(s["name"] for s in _json_output(result.output)["skills"])
        assert names == ["docx", "pdf"]

    def test_skills_add_installed_and_remove(self, runner, source, workspace):
        """Test installing, listing and removing a skill."""
        result = runner.invoke(
            cli, ["skills", "add", source, "--skill", "pdf", "--agent", "alpha", "--mode", "copy"]
        )
        assert result.exit_code == 0
        assert (workspace / ".alpha" / "skills" / "pdf" / "SKILL.md").is_file()

        result = runner.invoke(cli, ["skills", "installed", "--format", "json"])
        assert result.exit_code == 0
        records = _json_output(result.output)["skills"]
        assert [(r["name"], r["agents"]) for r in records] == [("pdf", ["alpha"])]

        result = runner.invoke(cli, ["skills", "remove", "pdf", "--agent", "alpha"])
        assert result.exit_code == 0
        assert not (workspace / ".alpha" / "skills" / "pdf").exists()

    def test_skills_add_global(self, runner, source, home):
        """Test installing into global agent directories."""
        result = runner.invoke(
            cli, ["skills", "add", source, "--skill", "pdf", "--agent", "beta", "--global"]
        )

        assert result.exit_code == 0
        assert (home / ".beta" / "skills" / "pdf").is_symlink()

    def test_skills_add_partial_failure_exits_1(self, runner, source):
        """Test a batch with failed pairs exits with status 1."""
        result = runner.invoke(
            cli, ["skills", "add", source, "--agent", "alpha", "--agent", "gamma", "--global"]
        )

        assert result.exit_code == 1
        assert "installs failed" in result.output

    def test_skills_add_invalid_agent(self, runner, source):
        """Test an unknown agent id is rejected."""
        result = runner.invoke(cli, ["skills", "add", source, "--agent", "zeta"])

        assert result.exit_code == 1
        assert "Invalid agents: zeta" in result.output

    def test_transient_failure_suggests_retry(self, runner):
        """Test a failed clone exits 1 and suggests running again."""
        with patch(
            "agentdeploy.skills.source.git.Repo.clone_from",
            side_effect=git.GitCommandError("clone", 128),
        ):
            result = runner.invoke(cli, ["skills", "add", "owner/repo", "--agent", "alpha"])

        assert result.exit_code == 1
        assert "run the command again" in result.output

    def test_permanent_failure_has_no_retry_suggestion(self, runner, source):
        """Test errors that will not change on retry do not suggest running again."""
        result = runner.invoke(cli, ["skills", "add", source, "--agent", "zeta"])

        assert result.exit_code == 1
        assert "run the command again" not in result.output

    def test_skills_remove_policy_violation(self, runner, source):
        """Test removing from part of a shared install is refused."""
        runner.invoke(cli, ["skills", "add", source, "--skill", "pdf", "--agent", "alpha"])

        result = runner.invoke(cli, ["skills", "remove", "pdf", "--agent", "alpha"])

        assert result.exit_code == 1
        assert "cannot be removed" in result.output

    def test_agents_list(self, runner, home):
        """Test listing agents with detection state."""
        (home / ".alpha").mkdir()

        result = runner.invoke(cli, ["agents", "list", "--format", "json"])

        assert result.exit_code == 0
        detected = {a["id"]: a["detected"] for a in _json_output(result.output)["agents"]}
        assert detected == {"universal": False, "alpha": True, "beta": False, "gamma": False}


class TestConfigCommands:
    def test_config_init_and_validate(self, runner, temp_dir):
        """Test creating and validating an example configuration."""
        config_path = temp_dir / "example.toml"

        result = runner.invoke(cli, ["config", "init", "--output", str(config_path)])
        assert result.exit_code == 0
        assert config_path.exists()

        result = runner.invoke(cli, ["config", "validate", str(config_path)])
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_config_validate_invalid(self, runner, temp_dir):
        """Test validating an invalid configuration."""
        config_path = temp_dir / "bad.toml"
        config_path.write_text('[skills]\nmode = "hardlink"\n')

        result = runner.invoke(cli, ["config", "validate", str(config_path)])

        assert result.exit_code == 1
        assert "skills.mode" in result.output
