import logging
import logging.handlers
import sys
from pathlib import Path
from pythonjsonlogger import jsonlogger


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that stamps every entry with the fields we search on.
    """
    def add_fields(self, log_record, record, message_dict):
        super(ServiceJsonFormatter, self).add_fields(log_record, record, message_dict)

        log_record['timestamp'] = record.created
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno
        # set by RequestIDMiddleware while a request is in flight
        log_record['request_id'] = getattr(record, 'request_id', None)


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: str = "INFO", log_dir: str = "logs", file_logging: bool = True):
    """
    Configure application-wide logging.

    Console output is human readable; app.log (everything) and error.log
    (ERROR and above) are rotated JSON files.

    Args:
        log_level: Minimum console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory where log files will be stored
        file_logging: Disable to keep test runs from writing log files
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers do the filtering

    # setup_logging may run more than once (app import in tests)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    log_path = Path(log_dir)
    if file_logging:
        log_path.mkdir(exist_ok=True)
        json_formatter = ServiceJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s')
        root_logger.addHandler(_rotating_handler(log_path / "app.log", logging.DEBUG, json_formatter))
        root_logger.addHandler(_rotating_handler(log_path / "error.log", logging.ERROR, json_formatter))

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("passlib.handlers.bcrypt").setLevel(logging.ERROR)  # noisy bcrypt version probe
    logging.getLogger("redis").setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": log_level,
            "log_dir": str(log_path.absolute()) if file_logging else None
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
