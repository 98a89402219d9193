"""
Tests for the thinkloop CLI.
"""

import os
from unittest.mock import patch

import pytest
import structlog
from typer.testing import CliRunner

from conftest import ScriptedProvider, call, decision
from thinkloop.api.cli.main import app
from thinkloop.application.factory import AgentFactory
from thinkloop.application.settings import reset_settings


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("THINKLOOP_"):
            monkeypatch.delenv(key)
    reset_settings()
    yield
    reset_settings()
    structlog.reset_defaults()


@pytest.fixture
def profile_dir(tmp_path):
    directory = tmp_path / "profiles"
    directory.mkdir()
    (directory / "researcher.yaml").write_text(
        "name: researcher\ndescription: Finds facts\nmax_iterations: 2\n", encoding="utf-8"
    )
    return directory


class AuthenticationFailure(Exception):
    """Provider error carrying an HTTP status, like a rejected API key."""

    status_code = 401


def scripted_factory(provider):
    """Stand-in for AgentFactory that wires a scripted model transport."""

    def build(settings=None, config_dir="configs"):
        return AgentFactory(settings=settings, provider=provider, config_dir=config_dir)

    return build


class TestMainCLI:
    """Test the main CLI application."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_cli_help(self):
        result = self.runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "run" in result.stdout
        assert "profiles" in result.stdout
        assert "config" in result.stdout

    def test_version(self):
        result = self.runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_config_show(self, monkeypatch):
        monkeypatch.setenv("THINKLOOP_DEFAULT_MODEL", "claude-sonnet")

        result = self.runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "claude-sonnet" in result.stdout


class TestProfilesCommand:
    def setup_method(self):
        self.runner = CliRunner()

    def test_list(self, profile_dir):
        result = self.runner.invoke(app, ["--config-dir", str(profile_dir), "profiles", "list"])

        assert result.exit_code == 0
        assert "researcher" in result.stdout
        assert "Finds facts" in result.stdout

    def test_list_empty_directory(self, tmp_path):
        result = self.runner.invoke(app, ["--config-dir", str(tmp_path), "profiles", "list"])

        assert result.exit_code == 0
        assert "No profiles found" in result.stdout

    def test_show_missing_profile(self, profile_dir):
        result = self.runner.invoke(
            app, ["--config-dir", str(profile_dir), "profiles", "show", "nobody"]
        )

        assert result.exit_code == 1


class TestRunCommand:
    """Test running agents from the command line."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_run_completes(self):
        provider = ScriptedProvider([decision("Simple", final_answer="Paris")])

        with patch(
            "thinkloop.api.cli.commands.run.AgentFactory", side_effect=scripted_factory(provider)
        ):
            result = self.runner.invoke(app, ["run", "goal", "Capital of France?"])

        assert result.exit_code == 0
        assert "Paris" in result.stdout
        assert "Usage" in result.stdout
        assert provider.call_names == ["think"]

    def test_run_with_profile_and_overrides(self, profile_dir):
        provider = ScriptedProvider([decision(final_answer="42")])

        with patch(
            "thinkloop.api.cli.commands.run.AgentFactory", side_effect=scripted_factory(provider)
        ):
            result = self.runner.invoke(
                app,
                [
                    "--config-dir",
                    str(profile_dir),
                    "run",
                    "goal",
                    "question",
                    "--profile",
                    "researcher",
                    "--model",
                    "gpt-4.1",
                ],
            )

        assert result.exit_code == 0
        assert provider.requests[0].models == ("gpt-4.1",)
        assert provider.requests[0].input["max_iterations"] == 2

    def test_budget_exhaustion_exit_code(self):
        provider = ScriptedProvider([decision(tool_calls=[call("missing", {})])])

        with patch(
            "thinkloop.api.cli.commands.run.AgentFactory", side_effect=scripted_factory(provider)
        ):
            result = self.runner.invoke(app, ["run", "goal", "loop", "--max-iterations", "1"])

        assert result.exit_code == 2
        assert "budget exhausted" in result.stdout

    def test_unknown_profile(self, profile_dir):
        result = self.runner.invoke(
            app,
            ["--config-dir", str(profile_dir), "run", "goal", "question", "--profile", "nobody"],
        )

        assert result.exit_code == 1

    def test_model_error_exit_code(self):
        provider = ScriptedProvider([AuthenticationFailure("invalid api key")])

        with patch(
            "thinkloop.api.cli.commands.run.AgentFactory", side_effect=scripted_factory(provider)
        ):
            result = self.runner.invoke(app, ["run", "goal", "question"])

        assert result.exit_code == 1
        assert "Run failed" in result.stdout
        assert "invalid api key" in result.stdout
        assert provider.call_names == ["think"]

    def test_exhausted_retries_exit_code(self, monkeypatch):
        monkeypatch.setenv("THINKLOOP_RETRY_MAX_RETRIES", "0")
        provider = ScriptedProvider([ConnectionError("connection reset")])

        with patch(
            "thinkloop.api.cli.commands.run.AgentFactory", side_effect=scripted_factory(provider)
        ):
            result = self.runner.invoke(app, ["run", "goal", "question"])

        assert result.exit_code == 1
        assert "ConnectionError" in result.stdout
