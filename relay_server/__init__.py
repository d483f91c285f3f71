"""
Server package for the chat relay.

This package contains all server-side functionality including:
- Display name registry
- Message history and mutation
- Image upload storage
- TCP and WebSocket channels
- Configuration and utilities
"""
