"""
vetclinic/utils/logging.py
──────────────────────────
Configures structured logging for production.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request, session


class RequestFormatter(logging.Formatter):
    """
    Custom formatter that injects request info (IP, URL, user if logged in)
    into logs if a request context is available.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
            record.user_id = session.get('user_id')
        else:
            record.url = None
            record.remote_addr = None
            record.user_id = None
        return super().format(record)


def setup_logging(app):
    """
    Configure rotating file logging: logs/app.log
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | ip | user | url | message
    """
    # 1. File Logger (skipped on read-only filesystems and under tests)
    if not app.testing:
        try:
            log_dir = os.path.join(app.root_path, '..', 'logs')
            os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'app.log'),
                maxBytes=5 * 1024 * 1024,
                backupCount=5
            )
            file_handler.setFormatter(RequestFormatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | '
                'user=%(user_id)s | %(url)s | %(message)s'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
        except OSError:
            app.logger.warning("Log directory not writable; logging to stdout only")

    # 2. Stdout Logger (Critical for container/cloud logs)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(logging.INFO)
    app.logger.addHandler(stream_handler)
    # app.logger is the "vetclinic" logger, so module loggers created with
    # logging.getLogger(__name__) propagate into these handlers.
    app.logger.setLevel(logging.INFO)
    app.logger.info("Vet clinic sales ledger startup")
