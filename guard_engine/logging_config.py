"""
Logging for Ads Guard: one file per module per day under the log dir, plus stdout.

Level and directory default to settings (GUARD_LOG_LEVEL, GUARD_LOG_DIR).
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .settings import get_settings


def setup_logging(
    module_name: str,
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Set up logging for a module with both file and console output.

    Returns the module logger; handlers are attached only once.
    Files are named {module}_{date}.log, e.g. logs/orchestrator_2026-10-18.log.
    """
    if log_level is None or log_dir is None:
        settings = get_settings()
        log_level = log_level or settings.log_level
        log_dir = log_dir or settings.log_dir
    log_level = log_level.upper()
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(module_name)
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Prevent duplicate handlers if setup_logging called multiple times
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        fmt='%(asctime)s | %(name)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    today = datetime.now().strftime("%Y-%m-%d")
    simple_module = module_name.split('.')[-1]
    log_file = log_path / f"{simple_module}_{today}.log"

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logger.level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logger.level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
