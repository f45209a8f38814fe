import logging
from pathlib import Path

import structlog

from milvue_batch.utils.logging import console_level, setup_logging


def test_console_level_precedence() -> None:
    assert console_level() == logging.WARNING
    assert console_level(quiet=True) == logging.ERROR
    assert console_level(verbose=True, quiet=True) == logging.INFO
    assert console_level(debug=True, verbose=True) == logging.DEBUG


def test_save_logfile_mirrors_structlog(tmp_path: Path) -> None:
    logfile = tmp_path / "logs" / "run.txt"
    setup_logging(verbose=True, extra_text_log=logfile)

    structlog.get_logger("milvue_batch.test").info("hello", study="1.2.3")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = logfile.read_text()
    assert "hello" in text
    assert "study=1.2.3" in text


def test_rotating_log_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("MILVUE_BATCH_LOG_DIR", str(tmp_path))
    setup_logging(debug=True)
    logging.getLogger("milvue_batch").debug("written to file")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "written to file" in (tmp_path / "milvue-batch.log").read_text()
