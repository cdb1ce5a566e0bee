import atexit
from datetime import (
    datetime,
)
import logging
import logging.handlers
import os
from pathlib import (
    Path,
)
import queue
import sys
import tempfile
from typing import (
    Any,
)

ROOT_LOGGER_NAME = "tcp_server"

log_queue: "queue.Queue[Any]" = queue.Queue()

# Stopped on reconfiguration and at exit
_current_listener: logging.handlers.QueueListener | None = None

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_debug_modules(debug_str: str) -> dict[str, int]:
    """
    Parse the TCP_SERVER_DEBUG environment variable into module log levels.

    Format examples:
    - "DEBUG"  # All modules at DEBUG level
    - "tcp_server.registry:DEBUG"  # Only the registry at DEBUG
    - "registry:DEBUG"  # Same as above, tcp_server prefix is optional
    - "server:DEBUG,io.trio:INFO"  # Multiple modules
    """
    module_levels: dict[str, int] = {}

    if not debug_str or debug_str.isspace():
        return module_levels

    if ":" not in debug_str and debug_str.upper() in logging._nameToLevel:
        return {"": getattr(logging, debug_str.upper())}

    for part in debug_str.split(","):
        if ":" not in part:
            continue

        module, level = part.split(":", 1)
        level = level.strip().upper()

        if level not in logging._nameToLevel:
            continue

        module = module.strip()
        if module.startswith(f"{ROOT_LOGGER_NAME}."):
            module = module[len(ROOT_LOGGER_NAME) + 1 :]
        module = module.replace("/", ".").strip(".")

        module_levels[module] = getattr(logging, level)

    return module_levels


def _silence(root_logger: logging.Logger) -> None:
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)
    root_logger.propagate = False


def setup_logging() -> None:
    """
    Set up logging configuration based on environment variables.

    Environment Variables:
        TCP_SERVER_DEBUG
            Controls logging levels, e.g. "DEBUG" or "registry:DEBUG,server:INFO".
            When unset only WARNING and above from the tcp_server loggers
            reach stderr.

        TCP_SERVER_DEBUG_FILE
            If set, logs are written to this file only. Otherwise they go to a
            file in the temp directory and to stderr.
    """
    global _current_listener

    if _current_listener is not None:
        _current_listener.stop()
        _current_listener = None

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    module_levels = _parse_debug_modules(os.environ.get("TCP_SERVER_DEBUG", ""))

    if not module_levels:
        _silence(root_logger)
        return

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    handlers: list[logging.Handler] = []

    log_file = os.environ.get("TCP_SERVER_DEBUG_FILE")

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        unique_id = os.urandom(4).hex()
        log_file = str(
            Path(tempfile.gettempdir()) / f"tcp-server_{timestamp}_{unique_id}.log"
        )
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)
        print(f"Logging to: {log_file}", file=sys.stderr)

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setFormatter(formatter)
    handlers.append(file_handler)

    queue_handler = logging.handlers.QueueHandler(log_queue)

    root_logger.handlers.clear()
    root_logger.addHandler(queue_handler)
    root_logger.propagate = False
    root_logger.setLevel(module_levels.get("", logging.INFO))

    for module, level in module_levels.items():
        if module:
            logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{module}")
            logger.handlers.clear()
            logger.addHandler(queue_handler)
            logger.setLevel(level)
            logger.propagate = False  # Prevent message duplication

    _current_listener = logging.handlers.QueueListener(
        log_queue, *handlers, respect_handler_level=True
    )
    _current_listener.start()


@atexit.register
def cleanup_logging() -> None:
    """Clean up logging resources on exit."""
    global _current_listener
    if _current_listener is not None:
        _current_listener.stop()
        _current_listener = None
