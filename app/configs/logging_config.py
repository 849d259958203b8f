import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Attach a single stdout handler to the root logger (safe to call more than once)"""
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    # uvicorn --reload re-imports main.py, so skip if our handler is already there
    for handler in root_logger.handlers:
        if getattr(handler, "_bidbuild_handler", False):
            return

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler._bidbuild_handler = True
    root_logger.addHandler(console_handler)
