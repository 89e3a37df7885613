"""
Centralized logging configuration for claw_core.

Configures the ``claw_core`` parent logger so every child logger
(claw_core.context.flush, claw_core.memory.index, …) inherits handlers
and level automatically.

Level and file come from the ``logging`` section of the config file;
``SessionManager.from_config_dir`` applies them when a host starts up.
"""

import logging
import logging.handlers
from pathlib import Path

_logging_configured = False


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure claw_core logging with console and optional file output.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file.
            - ``None``  → default path ``data/clawCore/LOGS/clawcore.log``
            - ``"none"`` → disable file logging
            - any other string → use as explicit file path
    """
    global _logging_configured
    if _logging_configured:
        return
    _logging_configured = True

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    parent_logger = logging.getLogger("claw_core")
    parent_logger.setLevel(numeric_level)
    parent_logger.propagate = False

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setLevel(numeric_level)
    console.setFormatter(fmt)
    parent_logger.addHandler(console)

    if isinstance(log_file, str) and log_file.lower() == "none":
        return

    if log_file is None:
        from claw_core.config.loader import _get_data_dir

        log_dir = _get_data_dir() / "LOGS"
        log_dir.mkdir(parents=True, exist_ok=True)
        resolved_path = str(log_dir / "clawcore.log")
    else:
        resolved_path = log_file
        Path(resolved_path).parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        resolved_path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(fmt)
    parent_logger.addHandler(file_handler)


def reset_logging() -> None:
    """Drop handlers installed by setup_logging (used by tests)."""
    global _logging_configured
    parent_logger = logging.getLogger("claw_core")
    for handler in list(parent_logger.handlers):
        parent_logger.removeHandler(handler)
        handler.close()
    parent_logger.propagate = True
    _logging_configured = False
