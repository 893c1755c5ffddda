"""
playdeck - multi-user music catalog and playlist server.

Clients connect over TCP, authenticate, browse a shared song catalog,
build personal and collaborative playlists, follow other users, and drive
a per-connection player through a newline-delimited text protocol.

Architecture:
    playdeck/
    ├── core/       # Config, logging, exceptions, password hashing, user store
    ├── catalog/    # Song model, read-only catalog, music directory loader
    ├── domain/     # Users, playlists, account capabilities
    ├── services/   # Authentication, playlists, social graph, attempt tracking
    ├── playback/   # Player state machine and traversal strategies
    ├── server/     # TCP server, sessions, wire protocol
    └── cli.py      # serve / scan / verify-store commands

Every command a session receives goes through one path:

    line -> protocol.parse_command -> SessionHandler dispatch table
         -> service call (inside a UserStore transaction when it mutates)
         -> response line(s), multi-line responses terminated by END

Dependencies:
    - PyYAML: configuration file
    - bcrypt: password hashing
    - mutagen: audio tag reading for the catalog scan
    - tqdm: scan progress bar and progress-safe console logging
    - rich-click: command line interface
"""

__version__ = "1.0.0"
__author__ = "playdeck Team"
