"""
File storage module for server-side file operations.

Handles:
- Storing uploaded files
- Serving requested files
- The persistent table of uploads
"""
