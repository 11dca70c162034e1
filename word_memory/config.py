from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
AUDIO_DIR = ARTIFACTS_DIR / "audio"
LOG_DIR = ARTIFACTS_DIR / "logs"
TEMPLATES_DIR = PACKAGE_DIR / "templates"
DB_PATH = PROJECT_ROOT / "word_memory.db"
LOG_FILE = LOG_DIR / "word_memory.log"

MASTERY_THRESHOLD = 3
GUEST_USER_ID = 1
SESSION_TIMEOUT_MINUTES = 120


def ensure_dirs() -> None:
    for path in [
        ARTIFACTS_DIR,
        AUDIO_DIR,
        LOG_DIR,
    ]:
        path.mkdir(parents=True, exist_ok=True)


def setup_logging(level: int = logging.INFO) -> None:
    logger = logging.getLogger("word_memory")
    logger.setLevel(level)
    if not any(isinstance(handler, RotatingFileHandler) for handler in logger.handlers):
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(LOG_FILE, maxBytes=5_000_000, backupCount=3)
        file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(file_handler)
    logging.basicConfig(level=level)
