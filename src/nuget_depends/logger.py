"""Functions for logging."""

import logging

# Loggers of libraries that are too chatty below WARNING
_QUIET_LOGGERS = ("urllib3",)


def setup_logger(level: str) -> None:
    """Configure the root logger so every module logs to stderr with one shared format.

    Unknown level names fall back to INFO.
    """
    level_value = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(level_value, int):
        level_value = logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    # Remove all handlers associated with the root logger (avoid duplicate logs)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(handler)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level_value, logging.WARNING))
