"""Logging setup shared by the API process, Celery workers and scripts."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once per process."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
