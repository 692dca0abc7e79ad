"""Centralized logging configuration module"""

import logging
import sys
from datetime import datetime
from pathlib import Path

# Whether already initialized
_initialized = False


def rotate_logs(logs_dir: Path, base_name: str = "server.log", keep_count: int = 3,
                max_bytes: int = 10 * 1024 * 1024):
    """Manually rotate log files (keep latest N files)"""
    current_log = logs_dir / base_name

    # If current log doesn't exist or is small, no need to rotate
    if not current_log.exists() or current_log.stat().st_size < max_bytes:
        return

    # Delete oldest backup
    oldest = logs_dir / f"{base_name}.{keep_count}"
    if oldest.exists():
        oldest.unlink()

    # Shift existing backups
    for i in range(keep_count - 1, 0, -1):
        old_file = logs_dir / f"{base_name}.{i}"
        new_file = logs_dir / f"{base_name}.{i + 1}"
        if old_file.exists():
            old_file.rename(new_file)

    # Rename current to .1
    backup_file = logs_dir / f"{base_name}.1"
    current_log.rename(backup_file)


def setup_logging(level: str = "INFO", logs_dir: Path = Path("logs")):
    """Configure console and file logging for the service"""
    global _initialized

    if _initialized:
        return

    logs_dir.mkdir(parents=True, exist_ok=True)
    rotate_logs(logs_dir)
    log_file = logs_dir / "server.log"

    # Write session separator
    with open(log_file, 'a', encoding='utf-8') as f:
        f.write("\n" + "=" * 100 + "\n")
        f.write(f"Server started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write("=" * 100 + "\n\n")

    formatter = logging.Formatter(
        '[%(asctime)s] [%(levelname)s] %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setFormatter(formatter)

    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        handlers=[console_handler, file_handler],
        force=True
    )

    logging.getLogger('kb_retrieval').setLevel(numeric_level)

    # Reduce log level for third-party libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('chromadb').setLevel(logging.WARNING)

    _initialized = True

    logging.getLogger(__name__).info("Logging initialized, writing to %s", log_file.absolute())
