"""
Server package for the LAN File Sharing System.

This package contains all server-side functionality including:
- Client session management and table broadcasts
- File storage and the table of uploaded files
- Configuration and utilities
"""
