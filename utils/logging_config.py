import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'


def configure_logging(level: str = "INFO", log_file: Optional[str] = "notifications.log"):
    """Configure logging to file and console."""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )
    return logging.getLogger("storefront_notifications")


def mask_secret(value: Optional[str], visible: int = 3) -> str:
    if not value:
        return ""
    return value[:visible] + "***"
