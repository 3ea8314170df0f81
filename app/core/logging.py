# app/core/logging.py
import logging
import sys
import colorlog

# Driver and client loggers that drown the engine's own output at INFO/DEBUG
NOISY_LOGGERS = ("pymongo", "motor", "kafka", "redis")

FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def level_for(settings) -> int:
    if settings.DEBUG:
        return logging.DEBUG
    return logging.WARNING if settings.APP_ENV == "production" else logging.INFO


def configure_logging(level=logging.INFO, color: bool | None = None):
    """Root handler on stdout. Colors only on a TTY unless forced; containers get plain lines."""
    if color is None:
        color = sys.stdout.isatty()

    if color:
        handler = colorlog.StreamHandler(sys.stdout)
        handler.setFormatter(
            colorlog.ColoredFormatter(
                "%(log_color)s%(asctime)s %(levelname)-8s [%(name)s]%(reset)s %(message)s",
                datefmt="%H:%M:%S",
                log_colors={
                    "DEBUG": "cyan",
                    "INFO": "green",
                    "WARNING": "yellow",
                    "ERROR": "red",
                    "CRITICAL": "bold_red",
                },
            )
        )
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(max(level, logging.INFO))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
