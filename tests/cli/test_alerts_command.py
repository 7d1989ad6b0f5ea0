"""Tests for the alerts CLI command."""

from typer.testing import CliRunner

from pulse_cli.cli.alerts import app
from pulse_cli.cli.jobs import app as jobs_app

runner = CliRunner()


class TestAlertsCommand:
    """Tests for alerts subcommands."""

    def test_list(self, config_file):
        """Test alert rules are listed with their type."""
        result = runner.invoke(app, ["list", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "hello-digest" in result.output
        assert "digest" in result.output
        assert "alarm" in result.output
        assert "1:00:00" in result.output

    def test_events_empty(self, config_file):
        """Test an empty store shows an empty table."""
        result = runner.invoke(app, ["events", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Recent Events" in result.output

    def test_events_after_run(self, config_file):
        """Test recorded events are listed."""
        runner.invoke(jobs_app, ["run", "hello", "--config", str(config_file)])

        result = runner.invoke(app, ["events", "command-output", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "command-output" in result.output
        assert "hello" in result.output
