"""
Client package for the LAN File Sharing System.

This package contains all client-side functionality including:
- File uploads and batched downloads
- Command-line and graphical user interfaces
- Configuration and utilities
"""
