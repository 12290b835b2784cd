"""Tests for the converge CLI commands."""

import json
import pytest
import yaml
from click.testing import CliRunner
from converge import __version__
from converge.cli.main import cli

CONFIG = {
    "variables": {"env": {"default": "dev"}},
    "resources": {
        "network": {"main": {"cidr_block": "10.0.0.0/16", "tags": {"Name": "net-${var.env}"}}},
        "subnet": {"public": {"network_id": "${network.main.id}", "cidr_block": "10.0.1.0/24"}},
    },
}


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A project directory with a configuration and an isolated settings file."""
    monkeypatch.setattr("converge.config.manager.get_user_config_path", lambda: tmp_path / "no-user-config.yaml")
    monkeypatch.chdir(tmp_path)
    (tmp_path / "converge.yaml").write_text(yaml.safe_dump(CONFIG))
    (tmp_path / "settings.yaml").write_text(yaml.safe_dump({
        "state_path": str(tmp_path / "state.json"),
        "timeout": 5,
        "simulated": {"cloud_path": str(tmp_path / "cloud.json")},
    }))
    return tmp_path


def invoke(*args):
    runner = CliRunner()
    return runner.invoke(cli, list(args) + ["--settings", "settings.yaml"])


class TestPlanCommand:
    """Test plan command."""

    def test_plan_lists_creates(self, project):
        result = invoke("plan")

        assert result.exit_code == 0
        assert "CONVERGE PLAN" in result.output
        assert "+ network.main" in result.output
        assert "Plan: 2 to create, 0 to update, 0 to replace, 0 to delete, 0 unchanged." in result.output
        assert not (project / "state.json").exists()

    def test_plan_json(self, project):
        result = invoke("plan", "--json", "--quiet")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [c["address"] for c in data["changes"]] == ["network.main", "subnet.public"]
        assert data["changes"][1]["desired"]["network_id"] == {"ref": "network.main.id"}

    def test_plan_out_then_apply(self, project):
        result = invoke("plan", "--out", "saved.json", "--quiet")
        assert result.exit_code == 0
        assert (project / "saved.json").exists()

        result = invoke("apply", "--plan", "saved.json", "--quiet")

        assert result.exit_code == 0
        assert "Apply complete." in result.output

    def test_plan_with_var_override(self, project):
        invoke("apply", "--quiet")

        result = invoke("plan", "--var", "env=prod")

        assert result.exit_code == 0
        assert "~ network.main" in result.output
        assert '"net-prod"' in result.output

    def test_missing_config(self, project):
        result = invoke("plan", "--config", "missing.yaml")

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output


class TestApplyCommand:
    """Test apply and destroy commands."""

    def test_apply_and_state_commands(self, project):
        result = invoke("apply")

        assert result.exit_code == 0
        assert "2 succeeded, 0 failed, 0 skipped." in result.output

        result = invoke("state", "list")
        assert result.exit_code == 0
        assert result.output.split() == ["network.main", "subnet.public"]

        result = invoke("state", "show", "subnet.public")
        assert result.exit_code == 0
        assert "# subnet.public" in result.output
        assert "freshness  = synced" in result.output

        result = invoke("state", "show", "subnet.public", "--json")
        assert json.loads(result.stdout)["kind"] == "subnet"

        result = invoke("plan")
        assert "No changes." in result.output

    def test_apply_json(self, project):
        result = invoke("apply", "--json", "--quiet")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert [r["status"] for r in data["report"]["results"]] == ["succeeded", "succeeded"]

    def test_destroy(self, project):
        invoke("apply", "--quiet")

        result = invoke("destroy")

        assert result.exit_code == 0
        assert "CONVERGE DESTROY PLAN" in result.output
        assert invoke("state", "list").output.strip() == ""

    def test_unreadable_cloud_exits_nonzero(self, project):
        (project / "converge.yaml").write_text(yaml.safe_dump({
            "resources": {"network": {"main": {"cidr_block": "10.0.0.0/16"}}}
        }))
        invoke("apply", "--quiet")
        (project / "cloud.json").write_text("{broken")

        result = invoke("apply", "--quiet")

        assert result.exit_code == 1
        assert "unreadable" in result.output

    def test_stale_saved_plan(self, project):
        invoke("plan", "--out", "saved.json", "--quiet")
        invoke("apply", "--quiet")

        result = invoke("apply", "--plan", "saved.json")

        assert result.exit_code == 1
        assert "Run plan again" in result.output

    def test_state_lock_held(self, project):
        (project / "state.json.lock").write_text('{"pid": 1}')

        result = invoke("apply")

        assert result.exit_code == 1
        assert "State is locked by another run" in result.output


class TestStateCommands:
    """Test taint, untaint and state surgery."""

    def test_show_unknown_address(self, project):
        result = invoke("state", "show", "network.nope")

        assert result.exit_code == 1
        assert "Resource network.nope is not in state" in result.output

    def test_taint_and_untaint(self, project):
        invoke("apply", "--quiet")

        result = invoke("taint", "subnet.public")
        assert result.exit_code == 0
        assert "Resource subnet.public has been marked as tainted" in result.output
        assert "subnet.public (tainted)" in invoke("state", "list").output
        assert "-/+ subnet.public" in invoke("plan").output

        result = invoke("untaint", "subnet.public")
        assert result.exit_code == 0
        assert "No changes." in invoke("plan").output

    def test_state_rm(self, project):
        invoke("apply", "--quiet")

        result = invoke("state", "rm", "subnet.public")

        assert result.exit_code == 0
        assert invoke("state", "list").output.split() == ["network.main"]
        assert invoke("state", "rm", "subnet.public").exit_code == 1


class TestStaticCommands:
    """Test validate, graph and version."""

    def test_validate(self, project):
        result = invoke("validate")

        assert result.exit_code == 0
        assert "Configuration is valid (2 resources)" in result.output

    def test_validate_reports_cycle(self, project):
        (project / "converge.yaml").write_text(yaml.safe_dump({
            "resources": {
                "security_group": {
                    "a": {"network_id": "${security_group.b.id}", "name": "a"},
                    "b": {"network_id": "${security_group.a.id}", "name": "b"},
                }
            }
        }))

        result = invoke("validate")

        assert result.exit_code == 1
        assert "Dependency cycle detected" in result.output
        assert "security_group.a" in result.output
        assert "security_group.b" in result.output

    def test_graph(self, project):
        result = invoke("graph")

        assert result.exit_code == 0
        assert '"subnet.public" -> "network.main";' in result.output

    def test_version(self):
        runner = CliRunner()

        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert f"converge version {__version__}" in result.output

        result = runner.invoke(cli, ["--version"])
        assert f"converge version {__version__}" in result.output
