import logging
from typing import Optional

from .settings import Settings, settings as default_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: Optional[Settings] = None, *, log_file: Optional[str] = None) -> logging.Logger:
    """
    Sets up the root logger from the service settings.
    """
    config = config or default_settings
    level = (config.service.log_level or "INFO").upper()

    logging.basicConfig(level=level, format=LOG_FORMAT)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)

    return logging.getLogger("little_things")
