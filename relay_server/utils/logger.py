"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from relay_common.constants import CHAT_LOG_FILE


class ServerLogger:
    """Server logging class."""

    def __init__(self, logs_dir: Optional[str] = None, log_level: int = logging.INFO):
        # Set up main logger
        self.logger = logging.getLogger('chat_relay')
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Create console handler
        self.console_handler = logging.StreamHandler()
        self.console_handler.setLevel(log_level)

        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.console_handler.setFormatter(formatter)

        # Add handler to logger
        self.logger.addHandler(self.console_handler)

        # Chat transcript is only written once a logs directory is configured
        self.logs_dir: Optional[Path] = None
        self.chat_log_path: Optional[Path] = None
        if logs_dir:
            self.configure(logs_dir)

    def configure(self, logs_dir: Optional[str] = None, log_level: Optional[int] = None):
        """Point the transcript at a logs directory and/or change the level."""
        if logs_dir:
            self.logs_dir = Path(logs_dir)
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            self.chat_log_path = self.logs_dir / CHAT_LOG_FILE
        if log_level is not None:
            self.logger.setLevel(log_level)
            self.console_handler.setLevel(log_level)

    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)

    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)

    def log_connection(self, addr, cid: str):
        """Log client connection."""
        self.info(f"New connection from {addr}, assigned cid={cid}")

    def log_claim(self, username: str, cid: str):
        """Log a display name claim."""
        self.info(f"User set: {username} (cid={cid})")

    def log_disconnect(self, username: Optional[str], cid: str):
        """Log client disconnect."""
        if username is None:
            self.info(f"Unnamed connection cid={cid} disconnected")
        else:
            self.info(f"User {username} (cid={cid}) disconnected")

    def log_chat(self, username: str, message_id: int, text: str):
        """Log chat message."""
        self.info(f"Chat #{message_id} from {username}: {text}")
        self._write_to_file(f"{datetime.now().isoformat()} | #{message_id} | {username} | {text}")

    def log_edit(self, username: str, message_id: int, text: str):
        self.info(f"Message {message_id} edited by {username}.")
        self._write_to_file(f"{datetime.now().isoformat()} | EDIT #{message_id} | {username} | {text}")

    def log_delete(self, username: str, message_id: int):
        self.info(f"Message {message_id} deleted by {username}.")
        self._write_to_file(f"{datetime.now().isoformat()} | DELETE #{message_id} | {username}")

    def log_upload(self, username: str, message_id: int, url: str):
        """Log a stored image upload."""
        self.info(f"Image saved and broadcast: {url} (#{message_id} by {username})")
        self._write_to_file(f"{datetime.now().isoformat()} | #{message_id} | {username} | IMAGE {url}")

    def log_rejected(self, event: str, cid: str, reason: str):
        """Log a request that was dropped without client feedback."""
        self.warning(f"Rejected '{event}' from cid={cid}: {reason}")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")

    def _write_to_file(self, content: str):
        """Append a line to the chat transcript."""
        if self.chat_log_path is None:
            return
        try:
            with open(self.chat_log_path, 'a', encoding='utf-8') as f:
                f.write(content + '\n')
        except OSError as e:
            self.error(f"Failed to write to log file {self.chat_log_path}: {e}")


# Global logger instance
logger = ServerLogger()
