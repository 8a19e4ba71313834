"""
End-to-end integration tests for agentdeploy.

These tests run the complete flows against real directories: a skill
source held in a local git repository is cloned, discovered and installed
into several agents, and a registry descriptor is compiled and written into
an editor configuration file.
"""

from pathlib import Path

import git
import pytest

from agentdeploy.adapters import EditorAdapter, EditorConfigStore, store_install_prompt
from agentdeploy.config.loader import SkillsConfig
from agentdeploy.errors import AgentDeployErrorCode, SourceResolutionError, UninstallPolicyError
from agentdeploy.service import InstallService
from agentdeploy.skills.installer import MultiAgentInstaller


def _commit_skill(repo: git.Repo, relative: str, name: str, description: str) -> None:
    skill_dir = Path(repo.working_tree_dir) / relative
    skill_dir.mkdir(parents=True, exist_ok=True)
    manifest = skill_dir / "SKILL.md"
    manifest.write_text(f"---\nname: {name}\ndescription: {description}\n---\n\n# {name}\n")
    repo.index.add([str(manifest)])
    repo.index.commit(f"Add {name} skill")


@pytest.fixture
def git_source(temp_dir: Path) -> str:
    """Local git repository with one tagged skill and one later skill."""
    repo = git.Repo.init(temp_dir / "skills-repo")
    _commit_skill(repo, "skills/pdf", "pdf", "Work with PDFs")
    repo.create_tag("v1")
    _commit_skill(repo, "skills/docx", "docx", "Work with documents")
    return (temp_dir / "skills-repo").as_uri()


@pytest.fixture
def clone_root(temp_dir: Path) -> Path:
    path = temp_dir / "clones"
    path.mkdir()
    return path


@pytest.fixture
def installer(registry, clone_root) -> MultiAgentInstaller:
    return MultiAgentInstaller(registry, SkillsConfig(), temp_root=clone_root)


@pytest.mark.integration
class TestSkillFlow:
    """Test clone, discover, install, inventory and uninstall together."""

    @pytest.mark.asyncio
    async def test_install_from_git_into_project(self, installer, git_source, workspace, clone_root):
        """Test a git source installs through the canonical directory."""
        result = await installer.add_skills_from_source(
            git_source, agents=["alpha", "beta"], workspace=workspace
        )

        assert result.status == "success"
        assert sorted(result.selected_skills) == ["docx", "pdf"]
        canonical = workspace / ".agents" / "skills" / "pdf"
        assert canonical.is_dir() and not canonical.is_symlink()
        for agent_dir in (".alpha", ".beta"):
            link = workspace / agent_dir / "skills" / "pdf"
            assert link.is_symlink()
            assert link.resolve() == canonical.resolve()
        assert list(clone_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_ref_selects_tag(self, installer, git_source, workspace, clone_root):
        """Test a #ref suffix clones the tagged revision."""
        skills = await installer.list_skills_from_source(f"{git_source}#v1")

        assert [s.name for s in skills] == ["pdf"]
        assert list(clone_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_clone_failure_leaves_nothing_behind(self, installer, temp_dir, clone_root):
        """Test a failed clone removes its temporary directory."""
        missing = (temp_dir / "no-such-repo").as_uri()

        with pytest.raises(SourceResolutionError) as exc_info:
            await installer.list_skills_from_source(missing)

        assert exc_info.value.code == AgentDeployErrorCode.CLONE_FAILED
        assert list(clone_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_inventory_and_uninstall(self, installer, git_source, workspace):
        """Test an installed skill is listed and removed from every agent."""
        await installer.add_skills_from_source(
            git_source, skill_names=["pdf"], agents=["alpha", "beta"], workspace=workspace
        )

        records = installer.list_installed_skills(workspace)
        assert [r.name for r in records] == ["pdf"]
        assert sorted(records[0].agents) == ["alpha", "beta", "universal"]
        assert records[0].uninstall_policy == "all-agents"

        with pytest.raises(UninstallPolicyError):
            await installer.uninstall_skill("pdf", agents=["alpha"], workspace=workspace)

        result = await installer.uninstall_skill("pdf", workspace=workspace)

        assert result.status == "success"
        assert not (workspace / ".alpha" / "skills" / "pdf").exists()
        assert not (workspace / ".beta" / "skills" / "pdf").exists()
        assert not (workspace / ".agents" / "skills" / "pdf").exists()
        assert installer.list_installed_skills(workspace) == []

    @pytest.mark.asyncio
    async def test_copy_mode_global_then_select_uninstall(self, installer, git_source, home):
        """Test global copies can be removed one agent at a time."""
        result = await installer.add_skills_from_source(
            git_source, skill_names=["docx"], agents=["alpha", "beta"], scope="global", mode="copy"
        )

        assert result.status == "success"
        assert (home / ".alpha" / "skills" / "docx" / "SKILL.md").is_file()
        assert not (home / ".alpha" / "skills" / "docx").is_symlink()

        await installer.uninstall_skill("docx", scope="global", agents=["alpha"])

        assert not (home / ".alpha" / "skills" / "docx").exists()
        assert (home / ".beta" / "skills" / "docx" / "SKILL.md").is_file()


@pytest.mark.integration
class TestServerFlow:
    """Test compiling a registry entry and installing it into an editor."""

    @pytest.mark.asyncio
    async def test_descriptor_into_editor_config(self, temp_dir, npm_descriptor, remote_descriptor):
        """Test two servers land in the editor file with merged inputs."""
        store = EditorConfigStore(temp_dir / "editor" / "mcp.json")
        service = InstallService(EditorAdapter(store_install_prompt(store)))

        compiled = service.compile(npm_descriptor)
        assert compiled.payload.args[0] == "@example/filesystem@1.2.3"

        first = await service.install(npm_descriptor)
        second = await service.install(remote_descriptor)

        assert first.success and second.success
        servers = store.list_servers()
        assert set(servers) == {"@example/filesystem", "io.example/weather"}
        assert servers["io.example/weather"]["type"] == "http"
        assert servers["io.example/weather"]["headers"]["Authorization"] == "Bearer ${input:api_key}"
        assert [i["id"] for i in store.read()["inputs"]] == ["root_dir", "api_token", "api_key"]

        assert await store.remove_server("@example/filesystem") is True
        assert set(store.list_servers()) == {"io.example/weather"}
