# logging_config.py
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
     """Configure root logging once for the API process."""
     resolved = getattr(logging, str(level).upper(), logging.INFO)
     if not isinstance(resolved, int):
          resolved = logging.INFO
     logging.basicConfig(level=resolved, format=LOG_FORMAT)
