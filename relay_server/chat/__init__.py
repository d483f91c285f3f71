"""
Chat module for server-side messaging functionality.

Handles:
- Display name claims and release
- Message history, edits, deletes and seen flags
- Typing indicator relay
- Event dispatch and broadcasting
"""
