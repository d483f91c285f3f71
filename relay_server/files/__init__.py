"""
File module for server-side upload handling.

Handles:
- Image extension checks
- Base64 decoding
- Collision-free storage under the upload directory
"""
