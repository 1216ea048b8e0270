from datetime import datetime
import os
import logging
import json
import sys


class JsonLogger(logging.Formatter):
    """Formatter that outputs JSON strings after parsing the log record."""

    def format(self, record):
        """
        Format the log record as a JSON string.

        Args:
            record: The log record to format

        Returns:
            str: JSON formatted log string
        """
        log_data = {
            'timestamp': datetime.now().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Structured extras passed through `extra=`
        if hasattr(record, 'metrics'):
            log_data['metrics'] = record.metrics

        if hasattr(record, 'operation'):
            log_data['operation'] = record.operation

        if record.exc_info:
            log_data['exception'] = {
                'type': str(record.exc_info[0].__name__),
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=str, ensure_ascii=False)


def setup_log_file(log_file_path):
    """
    Make sure the directory of a log file exists.

    Args:
        log_file_path (str): Path to the log file

    Returns:
        str: Absolute path to the log file
    """
    log_file_path = os.path.abspath(log_file_path)
    log_dir = os.path.dirname(log_file_path)
    os.makedirs(log_dir, exist_ok=True)
    return log_file_path


def get_logger(logger_name, log_file=None, clear_existing=True, console_json=True,
               level="INFO", stream=None):
    """
    Get a configured logger instance.

    The console handler writes to stderr so that generated text printed on
    stdout is never mixed with log lines. The file handler, when a log file is
    given, always writes JSON.

    Args:
        logger_name (str): Name for the logger
        log_file (str, optional): Path to the log file
        clear_existing (bool): Whether to clear existing handlers
        console_json (bool): Whether to use JSON formatting for console output
        level (str): Minimum level for the console handler
        stream (file, optional): Console stream, defaults to sys.stderr

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)

    if clear_existing and logger.handlers:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if console_json:
        console_handler.setFormatter(JsonLogger())
    else:
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)

    logger.addHandler(console_handler)

    if log_file is not None:
        log_path = setup_log_file(log_file)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonLogger())
        logger.addHandler(file_handler)

    return logger


def log_json(logger, message, data=None):
    """
    Log a message with optional JSON data.

    Args:
        logger (logging.Logger): Logger instance
        message (str): Log message
        data (dict, optional): Data to include in the log
    """
    if data is None:
        logger.info(message)
    else:
        logger.info(message, extra={"metrics": data})
