import logging

from booking_ledger.core.config import settings
from booking_ledger.core.request_context import request_id_ctx_var

# The HTTP middleware already logs one line per request.
QUIET_LOGGERS = ("uvicorn.access",)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx_var.get()
        return True


def setup_logging(level: str | int | None = None) -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    resolved_level = level if level is not None else settings.log_level.upper()
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s request_id=%(request_id)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    root_logger.setLevel(resolved_level)
    root_logger.addHandler(handler)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
