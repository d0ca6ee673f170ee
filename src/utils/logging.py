from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the API process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # googleapiclient logs every discovery fetch at INFO.
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
