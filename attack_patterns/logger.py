import logging
import sys

from pythonjsonlogger import jsonlogger

from .config import Settings, settings as default_settings

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Library loggers held at WARNING unless the engine itself runs at DEBUG
QUIET_LOGGERS = ("asyncio", "nats", "uvicorn.error")


def build_formatter(environment: str) -> logging.Formatter:
    if environment == "production":
        # Fields passed through ``extra`` (violation payloads) become JSON keys
        return jsonlogger.JsonFormatter(JSON_FORMAT, json_ensure_ascii=False)
    return logging.Formatter(PLAIN_FORMAT)


def setup_logging(config: Settings = default_settings) -> logging.Logger:
    """
    Send every engine log record to stdout.
    Production writes one JSON object per record so the audit log sink's
    violation payloads stay machine readable.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(build_formatter(config.ENVIRONMENT))
    root.addHandler(stream)
    root.setLevel(config.LOG_LEVEL.upper())

    logging.getLogger("uvicorn.access").disabled = True
    if root.level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    return root
