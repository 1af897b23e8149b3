import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the ``photobackup`` logger tree.

    Safe to call repeatedly (tests build many apps); the handler is only
    added once and later calls just adjust the level.
    """
    logger = logging.getLogger("photobackup")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_photobackup", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._photobackup = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
