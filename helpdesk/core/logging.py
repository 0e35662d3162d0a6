import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_plain_logger(name: str, level=logging.INFO, propagate: bool = False) -> logging.Logger:
    """Logger with its own stream handler, usable before logging.basicConfig runs (agent worker, scripts)"""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = propagate
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
