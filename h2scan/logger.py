import logging

LOG_FORMAT = "%(asctime)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("h2scan")
    logger.setLevel(level)

    # Prevent duplicate handlers if main() runs more than once
    if logger.handlers:
        return logger

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(sh)
    return logger
