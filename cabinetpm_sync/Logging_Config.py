# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import logging
import sys
from pathlib import Path
from typing import Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Metrics.metrics_logger import METRIC_LEVEL
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


class InterceptHandler(logging.Handler):
    """Routes stdlib logging records (httpx, sqlite helpers) into loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _not_metric(record) -> bool:
    return record["level"].name != METRIC_LEVEL


def configure_logging(
        level: str = "INFO",
        log_file: Optional[str] = None,
        rotation: str = "10 MB",
        retention: str = "14 days",
        metrics_log_file: Optional[str] = None,
):
    """
    Sets up loguru sinks for the sync engine.

    stderr gets regular logs at `level`. With `log_file` a rotating file sink
    is added. Metrics (METRIC level) only go to `metrics_log_file`, serialized
    as JSON, when one is given.
    """
    level = (level or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT, filter=_not_metric)

    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(str(path), level=level, format=LOG_FORMAT, rotation=rotation,
                       retention=retention, encoding="utf-8", filter=_not_metric)
        except OSError as e:
            logger.warning(f"File logging disabled, could not prepare {path}: {e}")

    if metrics_log_file:
        metrics_path = Path(metrics_log_file).expanduser()
        try:
            metrics_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(str(metrics_path), level=METRIC_LEVEL, serialize=True, rotation=rotation,
                       retention=retention, filter=lambda record: record["level"].name == METRIC_LEVEL)
        except OSError as e:
            logger.warning(f"Metrics logging disabled, could not prepare {metrics_path}: {e}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.debug(f"Logging configured (level={level}, file={log_file or 'none'})")

#
# End of Logging_Config.py
########################################################################################################################
