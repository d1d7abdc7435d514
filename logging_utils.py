from __future__ import annotations

import logging
import sys


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s message=%(message)s",
        stream=sys.stdout,
    )
    # httpx logs full request URLs at INFO, which would include the API key.
    logging.getLogger("httpx").setLevel(logging.WARNING)
