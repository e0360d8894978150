"""
Logging setup and configuration for Splunk Sync.

This module provides centralized logging configuration: a rotating log file
with retention, optional console output, scrubbing of credentials from log
messages, and an audit logger for authentication checks and grant changes.
"""

import os
import re
import glob
import logging
import logging.handlers
from datetime import datetime, timedelta
from typing import Any, Dict, List

LOG_FILE_NAME = 'splunk_sync.log'


class SensitiveDataFilter(logging.Filter):
    """Filter to scrub credentials from log messages."""

    SENSITIVE_KEYWORDS = [
        'password', 'token', 'secret', 'authorization', 'bearer',
        'api_key', 'access_token', 'truststore_password',
    ]

    # key=value
    ASSIGNMENT_PATTERNS = [
        re.compile(rf'({keyword}\s*=\s*)[^\s,}}\]]+', re.IGNORECASE)
        for keyword in SENSITIVE_KEYWORDS
    ]
    # "key": "value" and "key": value
    JSON_PATTERNS = [
        re.compile(rf'("{keyword}"\s*:\s*")[^"]*(")', re.IGNORECASE)
        for keyword in SENSITIVE_KEYWORDS
    ] + [
        re.compile(rf'("{keyword}"\s*:\s*)([^",}}\s]+)(\s*[,}}\]])', re.IGNORECASE)
        for keyword in SENSITIVE_KEYWORDS
    ]
    # Authorization: Bearer xxx / Authorization: Basic xxx
    HEADER_PATTERN = re.compile(r'(Authorization:\s*(?:Bearer|Basic)\s+)[^\s,}\]]+', re.IGNORECASE)
    # Bare header values such as 'Bearer xxx' inside reprs
    SCHEME_PATTERN = re.compile(r'\b((?:Bearer|Basic)\s+)[A-Za-z0-9._~+/=-]{8,}')

    def scrub(self, message: str) -> str:
        message = self.HEADER_PATTERN.sub(r'\1****', message)
        message = self.SCHEME_PATTERN.sub(r'\1****', message)
        for pattern in self.ASSIGNMENT_PATTERNS:
            message = pattern.sub(r'\1****', message)
        for pattern in self.JSON_PATTERNS:
            if pattern.groups == 3:
                message = pattern.sub(r'\1****\3', message)
            else:
                message = pattern.sub(r'\1****\2', message)
        return message

    def filter(self, record):
        """Scrub the fully formatted message of a record."""
        if hasattr(record, 'msg'):
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                message = str(record.msg)
            record.msg = self.scrub(message)
            record.args = None
        return True


class LoggingManager:
    """
    Manages logging configuration for the Splunk Sync application.

    Provides file-based logging with rotation, retention policies, and
    container-friendly console output.
    """

    def __init__(self):
        self.configured = False
        self.log_dir = None
        self.retention_days = 7

    def setup_logging(self, config: Dict[str, Any]) -> None:
        """
        Set up logging based on configuration.

        Args:
            config: The ``logging`` section of the configuration
        """
        if self.configured:
            return

        logging_config = config or {}

        log_level = str(logging_config.get('level', 'INFO')).upper()
        self.log_dir = logging_config.get('log_dir', 'logs')
        rotation = logging_config.get('rotation', 'daily')
        self.retention_days = logging_config.get('retention_days', 7)
        console_enabled = logging_config.get('console_output', True)
        console_level = str(logging_config.get('console_level', 'WARNING')).upper()

        self._ensure_log_directory()

        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level, logging.INFO))
        root_logger.handlers.clear()

        detailed_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%H:%M:%S'
        )

        sensitive_filter = SensitiveDataFilter()

        file_handler = self._create_file_handler(rotation)
        file_handler.setLevel(getattr(logging, log_level, logging.INFO))
        file_handler.setFormatter(detailed_formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

        if console_enabled:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(getattr(logging, console_level, logging.WARNING))
            console_handler.setFormatter(console_formatter)
            console_handler.addFilter(sensitive_filter)
            root_logger.addHandler(console_handler)

        self._cleanup_old_logs()

        self.configured = True

        logger = logging.getLogger(__name__)
        logger.info(f"Logging configured: level={log_level}, dir={self.log_dir}, "
                    f"retention={self.retention_days} days, console={console_enabled}")

    def reset(self) -> None:
        """Allow ``setup_logging`` to run again (used between sync runs in one process)."""
        self.configured = False

    def _ensure_log_directory(self) -> None:
        if self.log_dir and not os.path.exists(self.log_dir):
            try:
                os.makedirs(self.log_dir, exist_ok=True)
            except OSError as e:
                print(f"Warning: Could not create log directory {self.log_dir}: {e}")
                print("Falling back to current directory for logs")
                self.log_dir = '.'

    def _create_file_handler(self, rotation: str) -> logging.Handler:
        """
        Create appropriate file handler based on rotation setting.

        Args:
            rotation: Rotation setting ('daily', 'midnight', or 'none')
        """
        log_file = os.path.join(self.log_dir, LOG_FILE_NAME)

        if str(rotation).lower() in ('daily', 'midnight'):
            handler = logging.handlers.TimedRotatingFileHandler(
                filename=log_file,
                when='midnight',
                interval=1,
                backupCount=self.retention_days,
                encoding='utf-8'
            )
            handler.suffix = '%Y-%m-%d'
        else:
            handler = logging.FileHandler(log_file, encoding='utf-8')

        return handler

    def _cleanup_old_logs(self) -> None:
        """Remove rotated log files older than the retention period."""
        if not self.log_dir or self.retention_days <= 0:
            return

        cutoff_date = datetime.now() - timedelta(days=self.retention_days)

        for log_file in self.get_log_files():
            if log_file.endswith(LOG_FILE_NAME):
                continue
            try:
                file_time = datetime.fromtimestamp(os.path.getmtime(log_file))
                if file_time < cutoff_date:
                    os.remove(log_file)
            except OSError as e:
                print(f"Warning: Could not remove old log file {log_file}: {e}")

    def get_log_files(self) -> List[str]:
        if not self.log_dir:
            return []

        return sorted(glob.glob(os.path.join(self.log_dir, LOG_FILE_NAME + '*')))


# Global logging manager instance
_logging_manager = LoggingManager()


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Convenience function to set up logging.

    Args:
        config: Logging configuration dictionary
    """
    _logging_manager.setup_logging(config)


def cleanup_logs() -> None:
    """Force cleanup of old log files."""
    _logging_manager._cleanup_old_logs()


class SecurityAuditLogger:
    """Special logger for security-related events."""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_authentication_check(self, deployment: str, success: bool, detail: str = ''):
        """Log credential validation against a deployment."""
        status = "SUCCESS" if success else "FAILURE"
        message = f"Authentication {status}: deployment={deployment}"
        if detail:
            message += f" - {detail}"
        self.logger.info(message)

    def log_grant_operation(self, operation: str, entitlement: str, principal: str, deployment: str, success: bool):
        """Log grant/revoke outcomes for audit trail."""
        status = "SUCCESS" if success else "FAILURE"
        self.logger.info(f"Grant operation {status}: {operation} entitlement={entitlement} "
                         f"principal={principal} deployment={deployment}")

    def log_configuration_access(self, config_file: str):
        self.logger.info(f"Configuration loaded: {config_file}")


# Global security logger instance
security_logger = SecurityAuditLogger()
