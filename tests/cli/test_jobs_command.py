"""Tests for the jobs CLI command."""

from typer.testing import CliRunner

from pulse_cli.cli.exit_codes import ExitCode
from pulse_cli.cli.jobs import app

runner = CliRunner()


class TestJobsList:
    """Tests for jobs list."""

    def test_list(self, config_file):
        """Test schedules and unscheduled operations are listed."""
        result = runner.invoke(app, ["list", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "check-disk-usage" in result.output
        assert "every tick" in result.output
        assert "0 30 6 * * *" in result.output
        assert "Unscheduled operations: broken" in result.output

    def test_list_bad_cron(self, tmp_path):
        """Test invalid cron expressions are reported with the schedule."""
        path = tmp_path / "bad.toml"
        path.write_text('[[commands]]\nid = "hello"\ncommand = "true"\n\n[[schedules]]\noperation = "hello"\ncron = "* *"\n')

        result = runner.invoke(app, ["list", "--config", str(path)])

        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        assert "hello" in result.output


class TestJobsRun:
    """Tests for jobs run."""

    def test_run_without_store(self, config_file, pulse_env):
        """Test an operation runs and prints its event."""
        result = runner.invoke(app, ["run", "hello", "--config", str(config_file), "--no-store"])

        assert result.exit_code == 0, result.output
        assert "command-output" in result.output
        assert "hello" in result.output
        assert not (pulse_env / "data" / "pulse.db").exists()

    def test_run_failure(self, config_file):
        """Test a failing operation exits with the operation error code."""
        result = runner.invoke(app, ["run", "broken", "--config", str(config_file), "--no-store"])

        assert result.exit_code == ExitCode.OPERATION_ERROR
        assert "status 4" in result.output

    def test_run_unknown(self, config_file):
        """Test running an unknown operation exits with not found."""
        result = runner.invoke(app, ["run", "reboot", "--config", str(config_file), "--no-store"])

        assert result.exit_code == ExitCode.NOT_FOUND
        assert "reboot" in result.output

    def test_run_then_history(self, config_file):
        """Test stored runs show up in the history."""
        runner.invoke(app, ["run", "hello", "--config", str(config_file)])
        runner.invoke(app, ["run", "broken", "--config", str(config_file)])

        result = runner.invoke(app, ["history", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "hello" in result.output
        assert "broken" in result.output
        assert "1 succeeded, 1 failed" in result.output

        filtered = runner.invoke(app, ["history", "hello", "--config", str(config_file)])
        assert "1 succeeded, 0 failed" in filtered.output
