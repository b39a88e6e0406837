"""
Environment-aware logging setup.

- development: human-readable, coloured lines
- staging/production: one JSON object per line for log aggregation
"""

import json
import logging
import os
import sys
from datetime import datetime

PRODUCTION_ENVIRONMENTS = ("production", "prod", "staging")


class ColoredFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'ENDC': '\033[0m',
    }

    def format(self, record: logging.LogRecord) -> str:
        level_color = self.COLORS.get(record.levelname, '')
        end_color = self.COLORS['ENDC']
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        module_name = record.name if record.name != '__main__' else 'main'
        line = f"[{timestamp}] {level_color}{record.levelname:8s}{end_color} [{module_name}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'module': record.name,
            'message': record.getMessage(),
            'environment': os.getenv('ENVIRONMENT', 'unknown'),
        }
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def get_formatter(environment: str) -> logging.Formatter:
    if environment.lower() in PRODUCTION_ENVIRONMENTS:
        return JsonFormatter()
    return ColoredFormatter()


def init(level: str = "INFO", environment: str = None) -> None:
    """Configure the root logger once; call before anything logs."""
    environment = environment or os.getenv('ENVIRONMENT', 'development')
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(get_formatter(environment))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # uvicorn installs its own handlers; route them through ours instead
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
