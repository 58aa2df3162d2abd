"""
Logging setup shared by the API server and the CLI.
"""

import logging
from pathlib import Path
from typing import Optional

from config.settings import get_settings


LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the root logger once (UTF-8 file handler optional)."""
    settings = get_settings()
    level = (level or settings.log.level).upper()
    log_file = log_file or settings.log.file

    logger = logging.getLogger()
    logger.setLevel(level)

    # 기존 핸들러 제거 (중복 방지)
    if logger.handlers:
        logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8", mode="a")
        file_handler.setFormatter(logging.Formatter("%(asctime)s " + LOG_FORMAT))
        logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger
