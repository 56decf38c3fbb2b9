import logging
import sys

LOG_FORMAT = "[%(levelname)s] %(message)s"


def configure_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Send log records to stderr (or log_file), keeping stdout for results."""
    level = logging.DEBUG if verbose else logging.INFO
    if log_file:
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT, force=True)
    else:
        logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT, force=True)
