import logging
import sys
from typing import IO, Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO, stream: Optional[IO[str]] = None) -> None:
    """Send canvasmap logs to ``stream`` (stdout by default). Library code only calls ``logging.getLogger``."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(stream or sys.stdout)],
        force=True,
    )
