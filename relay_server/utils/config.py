"""
Server configuration module.

This module handles server-side configuration settings.
"""

import argparse
import logging

from relay_common.constants import (
    DEFAULT_SERVER_HOST, DEFAULT_PORT, DEFAULT_WS_PORT, UPLOAD_DIR, LOG_DIR,
    MAX_FRAME_SIZE, ALLOWED_IMAGE_EXTENSIONS
)


class ServerConfig:
    """Server configuration class."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT,
                 ws_port: int = DEFAULT_WS_PORT, upload_dir: str = UPLOAD_DIR,
                 logs_dir: str = LOG_DIR, log_level: str = 'INFO'):
        self.host = host
        self.port = port
        self.ws_port = ws_port  # 0 disables the WebSocket channel
        self.upload_dir = upload_dir

        # Logging configuration
        self.logs_dir = logs_dir
        self.log_level = log_level

        # Channel settings
        self.max_frame_size = MAX_FRAME_SIZE

        # Upload settings
        self.allowed_extensions = ALLOWED_IMAGE_EXTENSIONS

    @property
    def websocket_enabled(self) -> bool:
        return self.ws_port > 0

    def get_log_level(self) -> int:
        """Resolve the configured level name to a logging constant."""
        return getattr(logging, str(self.log_level).upper(), logging.INFO)

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'ws_port': self.ws_port
        }

    def get_upload_settings(self):
        """Get upload settings."""
        return {
            'upload_dir': self.upload_dir,
            'allowed_extensions': self.allowed_extensions
        }

    @classmethod
    def from_args(cls, argv=None) -> 'ServerConfig':
        """Build a configuration from command line arguments."""
        parser = argparse.ArgumentParser(description='Chat Relay Server')
        parser.add_argument('--host', type=str, default=DEFAULT_SERVER_HOST,
                            help=f'Host to bind to (default: {DEFAULT_SERVER_HOST})')
        parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                            help=f'TCP port for the line-delimited JSON channel (default: {DEFAULT_PORT})')
        parser.add_argument('--ws-port', type=int, default=DEFAULT_WS_PORT,
                            help=f'WebSocket port, 0 to disable (default: {DEFAULT_WS_PORT})')
        parser.add_argument('--upload-dir', type=str, default=UPLOAD_DIR,
                            help=f'Directory for uploaded images (default: {UPLOAD_DIR})')
        parser.add_argument('--logs-dir', type=str, default=LOG_DIR,
                            help=f'Directory for the chat transcript (default: {LOG_DIR})')
        parser.add_argument('--log-level', type=str, default='INFO',
                            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            help='Console log level (default: INFO)')

        args = parser.parse_args(argv)
        return cls(
            host=args.host,
            port=args.port,
            ws_port=args.ws_port,
            upload_dir=args.upload_dir,
            logs_dir=args.logs_dir,
            log_level=args.log_level
        )
