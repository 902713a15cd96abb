import logging
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Union[str, int] = "INFO") -> None:
    """
    Install a single stream handler on the root logger.
    Safe to call more than once (handlers are replaced, not stacked).
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # Transport retries from requests/urllib3 are noise at INFO.
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
