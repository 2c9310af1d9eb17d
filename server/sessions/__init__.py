"""
Session module for server-side connection management.

Handles:
- Live connection registry
- Per-connection frame reassembly
- Table update broadcasting
"""
