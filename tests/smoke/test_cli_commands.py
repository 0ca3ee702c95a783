"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Every command runs against a JSON store in a temporary directory.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

from spaced_review.stores import JsonFileStore

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "review-data"


@pytest.fixture
def cli(data_dir):
    def run_cli_command(command: str, input: str | None = None, timeout: int = 30):
        """
        Run a CLI command and return exit code, stdout, stderr.

        Args:
            command: The command to run (after 'python -m spaced_review.cli')
            input: Text fed to stdin for interactive prompts
            timeout: Maximum time to wait

        Returns:
            Tuple of (exit_code, stdout, stderr)
        """
        env = {
            **os.environ,
            "STORE_BACKEND": "json",
            "DATA_DIR": str(data_dir),
            "LOG_LEVEL": "WARNING",
        }
        result = subprocess.run(
            f"{sys.executable} -m spaced_review.cli {command}",
            shell=True,
            cwd=PROJECT_ROOT,
            env=env,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.returncode, result.stdout, result.stderr

    return run_cli_command


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self, cli):
        """Main help should list the commands."""
        code, stdout, stderr = cli("--help")

        assert code == 0, f"Help failed: {stderr}"
        for command in ("add", "schedule", "study", "stats", "master", "reset"):
            assert command in stdout

    def test_study_help(self, cli):
        code, stdout, stderr = cli("study --help")

        assert code == 0, f"Help failed: {stderr}"
        assert "--limit" in stdout


class TestContentCommands:
    """Test adding and overriding items."""

    def test_add(self, cli, data_dir):
        code, stdout, stderr = cli('add "ciao" "hello" --category vocabulary')

        assert code == 0, f"add failed: {stderr}"
        assert "Added" in stdout
        items = JsonFileStore(data_dir).all_items()
        assert len(items) == 1
        assert items[0].content == {"front": "ciao", "back": "hello"}

    def test_master_and_reset(self, cli, data_dir):
        cli('add "grazie" "thank you"')
        item_id = JsonFileStore(data_dir).all_items()[0].id

        code, stdout, stderr = cli(f"master {item_id}")
        assert code == 0, f"master failed: {stderr}"
        assert JsonFileStore(data_dir).get_item(item_id).mastered

        code, stdout, stderr = cli(f"reset {item_id} --yes")
        assert code == 0, f"reset failed: {stderr}"
        assert not JsonFileStore(data_dir).get_item(item_id).mastered

    def test_unknown_item(self, cli):
        code, stdout, stderr = cli("master does-not-exist")

        assert code == 1
        assert "Error" in stdout


class TestDashboardCommands:
    def test_schedule(self, cli):
        cli('add "ciao" "hello"')
        code, stdout, stderr = cli("schedule")

        assert code == 0, f"schedule failed: {stderr}"
        assert "Review Schedule" in stdout
        assert "Review Due Items" in stdout

    def test_stats_empty(self, cli):
        code, stdout, stderr = cli("stats --user learner")

        assert code == 0, f"stats failed: {stderr}"
        assert "Efficiency" in stdout


class TestStudyCommand:
    def test_nothing_due(self, cli):
        code, stdout, stderr = cli("study")

        assert code == 0
        assert "Nothing due" in stdout

    def test_study_session(self, cli, data_dir):
        """Reveal, rate easy, and see the summary and stats."""
        cli('add "ciao" "hello"')

        code, stdout, stderr = cli("study --user learner", input="\ne\n")

        assert code == 0, f"study failed: {stderr}"
        assert "hello" in stdout
        assert "Session Complete" in stdout
        assert JsonFileStore(data_dir).all_items()[0].level == 2

        code, stdout, stderr = cli("stats --user learner")
        assert code == 0
        assert "100%" in stdout

    def test_quit_early(self, cli):
        cli('add "uno" "one"')
        cli('add "due" "two"')

        code, stdout, stderr = cli("study", input="\nq\n")

        assert code == 0, f"study failed: {stderr}"
        assert "0/0 correct" in stdout
