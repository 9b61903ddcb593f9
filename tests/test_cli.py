"""
Tests for CLI Module.
=====================

Tests for the Typer commands that need no network access.
"""

from typer.testing import CliRunner

runner = CliRunner()


class TestCli:
    """Tests for CLI commands."""

    def test_help(self):
        """Test that the help text lists the commands."""
        from campusbot.cli.main import app

        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("scrape", "course", "reserve", "cancel", "info"):
            assert command in result.output

    def test_info_hides_credentials(self, monkeypatch):
        """Test that info reports credentials only as configured."""
        from campusbot.cli.main import app

        monkeypatch.setenv("CAMPUSBOT_USERNAME", "student")
        monkeypatch.setenv("CAMPUSBOT_PASSWORD", "s3cret-pw")

        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "configured" in result.output
        assert "s3cret-pw" not in result.output
        assert "studyroom" in result.output

    def test_unknown_category_exits_nonzero(self):
        """Test that a configuration error becomes exit code 1."""
        from campusbot.cli.main import app

        result = runner.invoke(app, ["scrape", "timetable"])

        assert result.exit_code == 1
        assert "ConfigurationError" in result.output

    def test_verbose_is_scoped_to_the_command(self):
        """Test that --verbose enables debug logs only while the command runs."""
        import logging

        from campusbot.cli.main import app

        original = logging.getLogger("campusbot").level

        result = runner.invoke(app, ["--verbose", "info"])

        assert result.exit_code == 0
        assert logging.getLogger("campusbot").level == original
