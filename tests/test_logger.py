import logging

import pytest

from payment_categorizer.logger import ColourizedFormatter, get_logging_config


def _record(level: int = logging.WARNING) -> logging.LogRecord:
    return logging.LogRecord("payment_categorizer", level, __file__, 1, "hello", None, None)


def test_formatter_colours_level_name() -> None:
    formatter = ColourizedFormatter(fmt="%(levelname)s %(message)s", use_colors=True)
    record = _record()

    output = formatter.format(record)

    assert output == f"{ColourizedFormatter.YELLOW}WARNING{ColourizedFormatter.RESET} hello"
    assert record.levelname == "WARNING"


def test_no_color_disables_escape_codes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")

    formatter = ColourizedFormatter(fmt="%(levelname)s %(message)s")

    assert formatter.format(_record()) == "WARNING hello"


def test_file_handler_added_with_log_dir(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = get_logging_config()

    assert config["handlers"]["file"]["formatter"] == "plain"
    assert config["loggers"][""]["handlers"] == ["console", "file"]
    assert config["loggers"][""]["level"] == "DEBUG"
