"""
File transfer module for client-side file operations.

Handles:
- File uploads to server
- Batched file downloads from server
- The local copy of the server table
"""
