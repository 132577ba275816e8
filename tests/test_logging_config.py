import logging
from pathlib import Path

from cadmodules.logging_config import setup_logging


def test_setup_logging_is_idempotent(tmp_path: Path) -> None:
    log_file = tmp_path / "run.log"
    setup_logging(logging.INFO)
    logger = setup_logging(logging.DEBUG, str(log_file))
    assert logger.name == "cadmodules"
    assert len(logger.handlers) == 2

    logging.getLogger("cadmodules.counting").debug("counted 3 inserts")
    for handler in logger.handlers:
        handler.flush()
    text = log_file.read_text(encoding="utf-8")
    assert "DEBUG   cadmodules.counting - counted 3 inserts" in text

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
