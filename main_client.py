#!/usr/bin/env python3
"""
Chat Relay Client - Main Entry Point

Usage:
    python main_client.py --username alice

Optional arguments:
    --host HOST           Server host (default: localhost)
    --port PORT           Server TCP port (default: 3000)
    --username NAME       Display name to claim on connect
"""

if __name__ == "__main__":
    from relay_client.main_client import main

    main()
