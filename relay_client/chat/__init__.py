"""
Chat module for client-side messaging functionality.

Handles:
- Sending chat, edit, delete, seen and typing events
- Image uploads as data URIs
- Receiving and rendering relay events
"""
