from __future__ import annotations

import logging

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
# Client libraries that log every metadata probe request.
_HTTP_LOGGERS = ("httpx", "httpcore")


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("feedgen_host").setLevel(level)
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(level)
