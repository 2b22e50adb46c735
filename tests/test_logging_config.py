"""
Unit tests for the logging setup used by the runner.
"""

import io
import logging
import sys
from pathlib import Path

import pytest

from sandpile_sim.logging_config import LOGGER_NAME, resolve_level, setup_logging

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.append(str(ROOT / "src"))

from scripts import run_sandpile  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_package_logger():
    logger = logging.getLogger(LOGGER_NAME)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)


def test_console_handler_writes_to_stderr():
    logger = setup_logging()
    (handler,) = logger.handlers
    assert handler.stream is sys.stderr
    assert logger.level == logging.INFO


def test_custom_stream_receives_records():
    buffer = io.StringIO()
    setup_logging("debug", stream=buffer)
    logging.getLogger("sandpile_sim.snapshot").debug("hello %d", 7)
    assert "DEBUG" in buffer.getvalue()
    assert "sandpile_sim.snapshot: hello 7" in buffer.getvalue()


@pytest.mark.parametrize(
    "level, expected",
    [("debug", logging.DEBUG), ("INFO", logging.INFO), ("Warning", logging.WARNING),
     (logging.ERROR, logging.ERROR)],
)
def test_resolve_level(level, expected):
    assert resolve_level(level) == expected


def test_unknown_level_name_rejected():
    with pytest.raises(ValueError):
        resolve_level("chatty")


def test_repeated_setup_replaces_handlers(tmp_path):
    log_file = tmp_path / "run.log"
    setup_logging("INFO", log_file=str(log_file))
    logger = setup_logging("WARNING")
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING


def test_log_file_appends(tmp_path):
    log_file = tmp_path / "run.log"
    log_file.write_text("earlier run\n")
    setup_logging("INFO", log_file=str(log_file), stream=io.StringIO())
    logging.getLogger("sandpile_sim").info("second run")
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
    text = log_file.read_text()
    assert text.startswith("earlier run\n")
    assert "second run" in text


def test_runner_keeps_logs_off_stdout(tmp_path, capsys):
    out = tmp_path / "run.sand"
    code = run_sandpile.main(
        ["--width", "9", "--height", "9", "--interval", "4", "--ticks", "2",
         "--out", str(out), "--log-level", "INFO"]
    )
    assert code == 0
    captured = capsys.readouterr()
    assert "Saved snapshot" in captured.err
    assert "Saved snapshot" not in captured.out
    assert "Grains: 8 dropped" in captured.out
    assert all("INFO" not in line for line in captured.out.splitlines())
