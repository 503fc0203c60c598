"""Logging setup and per-request loggers."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
LOG_DATEFMT = "%H:%M:%S"

logger = logging.getLogger("skillsmith")


class RequestLogger(logging.LoggerAdapter):
    """Tags every record with the session and user a request belongs to."""

    def process(self, msg, kwargs):
        extra = self.extra or {}
        return f"[session={extra.get('session_id')} user={extra.get('user_id')}] {msg}", kwargs


def request_logger(session_id: str, user_id: str, base: logging.Logger | None = None) -> RequestLogger:
    return RequestLogger(base or logger.getChild("chat"), {"session_id": session_id, "user_id": user_id})


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
