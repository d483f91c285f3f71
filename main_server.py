#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Runs the relay with:
- Line-delimited JSON over TCP
- WebSockets, plus HTTP GET for uploaded images

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 0.0.0.0)
    --port PORT           TCP port (default: 3000)
    --ws-port PORT        WebSocket port, 0 disables (default: 3001)
    --upload-dir DIR      Upload directory (default: uploads)
    --logs-dir DIR        Chat transcript directory (default: logs)
    --log-level LEVEL     Console log level (default: INFO)
"""

if __name__ == "__main__":
    from relay_server.main_server import main

    main()
