"""
Shared constants for the chat relay.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 3000
DEFAULT_WS_PORT = 3001

# Frame limits (base64 images travel inline)
MAX_FRAME_SIZE = 8 * 1024 * 1024

# Frames queued for one slow peer before it is disconnected
MAX_OUTBOX_FRAMES = 1000

# Uploads
UPLOAD_DIR = 'uploads'
UPLOAD_URL_PREFIX = '/uploads/'
ALLOWED_IMAGE_EXTENSIONS = ('png', 'jpg', 'jpeg', 'gif', 'webp', 'avif')
DATA_URI_MARKER = ';base64,'

# Message display time, e.g. "03:07 PM"
TIMESTAMP_FORMAT = '%I:%M %p'

# Logging
LOG_DIR = 'logs'
CHAT_LOG_FILE = 'chat_history.log'


# Event names
class MessageTypes:
    # Client to Server
    SET_USERNAME = 'set username'
    CHAT_MESSAGE = 'chat message'
    DELETE_MESSAGE = 'delete message'
    EDIT_MESSAGE = 'edit message'
    MARK_SEEN = 'mark seen'
    TYPING = 'typing'
    STOP_TYPING = 'stop typing'
    IMAGE_UPLOAD = 'image upload'

    # Server to Client
    LOAD_HISTORY = 'load history'
    EDIT_CONFIRMED = 'edit message confirmed'
    MESSAGE_SEEN = 'message seen'
    USER_DISCONNECTED = 'user disconnected'
