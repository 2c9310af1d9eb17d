#!/usr/bin/env python3
"""
LAN File Sharing Server - Launcher

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 0.0.0.0)
    --port PORT           TCP port (default: 9000)
    --upload-dir DIR      Directory for uploaded files (default: SavedFilesOnServer)
    --table-file FILE     Table of uploaded files (default: TableFile.txt)
    --logs-dir DIR        Directory for the transfer log (default: logs)
    --debug               Enable debug logging
"""

if __name__ == "__main__":
    from server.main_server import main

    main()
