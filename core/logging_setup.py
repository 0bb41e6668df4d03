# core/logging_setup.py
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(debug: bool = False) -> Path:
    """
    Configure application-wide logging.

    - Logs to ~/.tcg_price_tracker/app.log (rotating, max ~1 MB, 3 backups)
    - Also logs to console (stderr) next to uvicorn's own output

    Returns the log file path.
    """
    log_dir = Path.home() / ".tcg_price_tracker"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Re-running (reload, tests) must not stack handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s - %(message)s")
    )
    file_handler.setLevel(level)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s - %(message)s"))
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    # Chatty at DEBUG, useless in our logs
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized, log file: {log_file}")
    return log_file
