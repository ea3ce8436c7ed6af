import logging
import sys
from pythonjsonlogger import jsonlogger
from authenticator.core.config import settings

_HANDLER_NAME = "authenticator"

def setup_logging():
    """Install the stdout handler once; repeated calls only refresh the level."""
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL)
    if any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    if settings.LOG_JSON:
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"}
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
