import logging
import os


def get_logger(name="boutique_pos"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        level = os.environ.get("BOUTIQUE_POS_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger
