import logging
import sys

LOG_FORMAT = "[%(levelname).4s] %(name)s: %(message)s"


def setup_logger(debug: bool = False) -> None:
    """Configure the root logger to write to stderr.

    Calling it again only adjusts the level.
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    # Prevent duplicate handlers if this function is called multiple times
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.NOTSET)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    # urllib3 logs every request to the daemon at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("docker").setLevel(logging.INFO)
