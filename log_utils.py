"""
Logging helpers shared by the mask and dose processing classes.
"""
import logging


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def get_logger(name: str, verbose: bool = False) -> logging.Logger:
    """
    Return a named logger with a single stream handler attached.

    Args:
        name (str): Logger name, usually the class name.
        verbose (bool): If True the logger emits DEBUG records, otherwise INFO.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
