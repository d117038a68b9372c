# logger.py
import os
import logging
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "craftline"

# Default logging configuration
DEFAULT_CONFIG = {
    "level": "INFO",
    "file": "logs/craftline.log",
    "max_size": 1048576,  # 1MB
    "backup_count": 3
}


def setup_logger(config=None):
    """Set up the application logger; every craftline.* module logs through it."""
    if config is None:
        config = {}

    # Merge with default config
    log_config = {**DEFAULT_CONFIG, **config.get("logging", {})}

    logger = logging.getLogger(LOGGER_NAME)
    level = logging.getLevelName(str(log_config["level"]).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler; an empty "file" setting means console only
    if log_config["file"]:
        try:
            log_dir = os.path.dirname(log_config["file"])
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_config["file"],
                maxBytes=log_config["max_size"],
                backupCount=log_config["backup_count"]
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.error(f"Failed to set up file logging: {str(e)}")

    return logger


# Shared logger; handlers are attached by configure_logger
logger = logging.getLogger(LOGGER_NAME)


def configure_logger(config):
    """(Re)configure the logger with new settings, dropping old handlers."""
    global logger

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    logger = setup_logger(config)

    return logger
