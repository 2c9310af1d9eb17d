#!/usr/bin/env python3
"""
LAN File Sharing Client - Launcher

Usage:
    python main_client.py                      # GUI
    python main_client.py --cli                # interactive command line
    python main_client.py table
    python main_client.py upload FILE...
    python main_client.py download DIR NAME...

Optional arguments:
    --server-ip IP        Server address (default: localhost)
    --port PORT           Server port (default: 9000)
    --debug               Enable debug logging
"""

if __name__ == "__main__":
    from client.main_client import main

    main()
