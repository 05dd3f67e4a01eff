"""Unit tests for zerotouch_cli.shared.logging module."""

import logging

import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_logging():
    """Restore logging and structlog defaults after each test."""
    yield
    for handler in logging.getLogger().handlers[:]:
        handler.close()
        logging.getLogger().removeHandler(handler)
    structlog.reset_defaults()


@pytest.mark.cli_unit
class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_mirrors_to_file(self, tmp_path):
        """Test log lines are appended to the bootstrap log."""
        from zerotouch_cli.shared.logging import configure_logging, get_logger

        log_file = tmp_path / "log" / "bootstrap.log"
        configure_logging("info", log_file=log_file)

        get_logger("test").info("step_started", step="network")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert "step_started" in content
        assert "network" in content
        assert "\x1b[" not in content

    def test_level_filters(self, tmp_path):
        """Test messages below the level are dropped."""
        from zerotouch_cli.shared.logging import configure_logging, get_logger

        log_file = tmp_path / "bootstrap.log"
        configure_logging("warning", log_file=log_file)

        get_logger("test").info("hidden_event")
        get_logger("test").warning("shown_event")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text()
        assert "hidden_event" not in content
        assert "shown_event" in content

    def test_json_output(self, tmp_path):
        """Test JSON lines for unattended runs."""
        import json

        from zerotouch_cli.shared.logging import configure_logging, get_logger

        log_file = tmp_path / "bootstrap.log"
        configure_logging("info", log_file=log_file, json_output=True)

        get_logger("test").info("step_complete", step="cni")
        for handler in logging.getLogger().handlers:
            handler.flush()

        record = json.loads(log_file.read_text().splitlines()[-1])
        assert record["event"] == "step_complete"
        assert record["step"] == "cni"
        assert record["level"] == "info"


@pytest.mark.cli_unit
class TestLogHeader:
    """Tests for log_header."""

    def test_header_lines(self, tmp_path):
        """Test a header is a rule, the title, and a rule."""
        from zerotouch_cli.shared.logging import configure_logging, get_logger, log_header

        log_file = tmp_path / "bootstrap.log"
        configure_logging("info", log_file=log_file)

        log_header(get_logger("test"), "BOOTSTRAP COMPLETE")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = log_file.read_text().splitlines()
        titles = [i for i, line in enumerate(lines) if "BOOTSTRAP COMPLETE" in line]
        assert len(titles) == 1
        assert "=" * 20 in lines[titles[0] - 1]
        assert "=" * 20 in lines[titles[0] + 1]
