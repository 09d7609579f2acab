import logging
import os
from pathlib import Path

from dotenv import load_dotenv


ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(ROOT_DIR / ".env")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
TIMELINE_LOG_FILE = os.getenv("TIMELINE_LOG_FILE", "").strip()


def get_setting(name: str, default: str | None = None) -> str | None:
    """Read a setting from the environment (.env already applied)."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _attach_file_handler(
    logger_name: str,
    log_file_path: Path,
    level_name: str | None = None,
) -> None:
    logger_level = (level_name or LOG_LEVEL).upper()
    logger_level_value = getattr(logging, logger_level, logging.INFO)

    target_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(log_file_path)
        for handler in target_logger.handlers
    ):
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        file_handler.setLevel(logger_level_value)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        target_logger.addHandler(file_handler)
    target_logger.setLevel(logger_level_value)


def configure_logging(level: str | None = None) -> None:
    """Set up root logging and the optional timeline_core file log."""
    logging.basicConfig(level=(level or LOG_LEVEL).upper(), format=LOG_FORMAT)

    if TIMELINE_LOG_FILE:
        log_path = Path(TIMELINE_LOG_FILE)
        if not log_path.is_absolute():
            log_path = ROOT_DIR / log_path
        _attach_file_handler("timeline_core", log_path, level)
