"""
Centralized logging configuration for the conversation router.

Every record carries the conversation it belongs to (``thread_id``) and the
pipeline stage that emitted it (``stage``). User ids are phone numbers, so
log lines show them through `mask_user_id`. With the default JSON output one
turn can be followed across stages by filtering on its thread id; ``"json":
false`` in the logging section switches to a one-line text format for local
development.

Typical usage:

    logger = get_logger(__name__, thread_id=state.threadId, stage="router")
    logger.info("[Router] Continuing registration")
"""

import json
import logging
import logging.handlers # Required for RotatingFileHandler
import os
import sys
from typing import List

NO_THREAD = 'no_thread'
NO_STAGE = 'no_stage'

TEXT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(thread_id)s] - [%(stage)s] - %(message)s'
DEFAULT_LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def mask_user_id(user_id: str) -> str:
    """
    Hide all but the last four characters of a user id (usually a phone number).

    >>> mask_user_id("+5511999998888")
    '**********8888'
    """
    if not user_id:
        return user_id
    visible = user_id[-4:]
    return '*' * max(len(user_id) - 4, 0) + visible


class TurnContextFilter(logging.Filter):
    """
    Give every record the turn context attributes, defaulting the missing ones.

    Records emitted through a plain ``logging.getLogger`` logger have no
    ``thread_id`` or ``stage``; without defaults the text format would fail on them.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'thread_id'):
            record.thread_id = NO_THREAD
        if not hasattr(record, 'stage'):
            record.stage = NO_STAGE
        return True


class StructuredLogFormatter(logging.Formatter):
    """
    Render records as single-line JSON objects.

    Features:
    - thread_id and stage are always present (see `TurnContextFilter`)
    - Any ``extra_fields`` dictionary attached to the record is merged in
    - Exception tracebacks are kept under ``exception``
    """

    def format(self, record):
        log_data = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'logger': record.name,
            'thread_id': getattr(record, 'thread_id', NO_THREAD),
            'stage': getattr(record, 'stage', NO_STAGE),
            'message': record.getMessage(),
        }
        log_data.update(getattr(record, 'extra_fields', None) or {})
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_logger(name: str, thread_id: str = NO_THREAD, stage: str = NO_STAGE) -> logging.LoggerAdapter:
    """
    Get a logger adapter bound to one conversation thread and stage.

    Args:
        name (str): Logger name (usually __name__)
        thread_id (str): Conversation thread the records belong to
        stage (str): Pipeline stage emitting the records

    Returns:
        logging.LoggerAdapter: Adapter that stamps ``thread_id`` and ``stage`` on every record
    """
    return logging.LoggerAdapter(logging.getLogger(name), {'thread_id': thread_id, 'stage': stage})


def _resolve_level(level_name: str, default_level: int) -> int:
    level = logging.getLevelName(str(level_name).upper())
    if not isinstance(level, int):
        print(f"Warning: Invalid log level '{level_name}'. Using {logging.getLevelName(default_level)}.",
              file=sys.stderr)
        return default_level
    return level


def _build_handlers(config: dict, formatter: logging.Formatter) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_file_path = config.get('file_path')
    if log_file_path:
        try:
            log_dir = os.path.dirname(log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                log_file_path,
                maxBytes=int(config.get('max_bytes', 5 * 1024 * 1024)),
                backupCount=int(config.get('backup_count', 3)),
                encoding='utf-8',
            ))
        except OSError as e:
            print(f"Error setting up file logging to {log_file_path}: {e}. File logging will be disabled.",
                  file=sys.stderr)

    context_filter = TurnContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
    return handlers


def setup_app_logging(config: dict = None, default_level=logging.INFO) -> None:
    """
    Set up logging for the entire application.

    The root logger is reconfigured from scratch (existing handlers are closed)
    so that calling this twice, e.g. under the test runner, does not duplicate output.

    Args:
        config (dict, optional): The ``logging`` section of config.json.
                                Recognized keys:
                                - 'level': Log level name (e.g., "DEBUG", "INFO").
                                - 'json': False for the text format. Defaults to True.
                                - 'file_path': Rotating log file. Empty or missing disables file logging.
                                - 'max_bytes': Max size of the log file before rotation.
                                - 'backup_count': Number of rotated files to keep.
                                - 'date_format': Timestamp format.
        default_level (int, optional): Level used when none is configured. Defaults to logging.INFO.
    """
    config = config or {}
    level_name = config.get('level', logging.getLevelName(default_level))
    level = _resolve_level(level_name, default_level)

    date_format = config.get('date_format', DEFAULT_LOG_DATE_FORMAT)
    if config.get('json', True):
        formatter = StructuredLogFormatter(datefmt=date_format)
    else:
        formatter = logging.Formatter(TEXT_LOG_FORMAT, datefmt=date_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(config, formatter):
        root_logger.addHandler(handler)

    get_logger("LoggingConfig").info(
        "Application logging setup complete. Level: %s, file: %s",
        logging.getLevelName(level), config.get('file_path') or 'disabled',
    )
